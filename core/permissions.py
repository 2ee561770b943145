# ============================================
# CENTRALIZED ACTION REGISTRY
# ============================================
# Canonical action ids gate every feature in the case booking UI.
# The registry documents the vocabulary and drives the matrix columns;
# the authorization engine never rejects an id for being missing here.
# ============================================
from typing import Dict, List


class PERMISSION_ACTIONS:
    # Case Management
    CREATE_CASE = "create-case"
    VIEW_CASES = "view-cases"
    AMEND_CASE = "amend-case"
    DELETE_CASE = "delete-case"
    UPDATE_CASE_STATUS = "update-case-status"
    CANCEL_CASE = "cancel-case"
    EDIT_SETS = "edit-sets"
    BOOKING_CALENDAR = "booking-calendar"

    # Status Transitions
    PROCESS_ORDER = "process-order"
    ORDER_PROCESSED = "order-processed"
    SALES_APPROVAL = "sales-approval"
    PENDING_DELIVERY_HOSPITAL = "pending-delivery-hospital"
    DELIVERED_HOSPITAL = "delivered-hospital"
    CASE_COMPLETED = "case-completed"
    PENDING_DELIVERY_OFFICE = "pending-delivery-office"
    DELIVERED_OFFICE = "delivered-office"
    TO_BE_BILLED = "to-be-billed"
    CASE_CLOSED = "case-closed"

    # User Management
    CREATE_USER = "create-user"
    EDIT_USER = "edit-user"
    DELETE_USER = "delete-user"
    VIEW_USERS = "view-users"
    ENABLE_DISABLE_USER = "enable-disable-user"
    RESET_PASSWORD = "reset-password"
    EDIT_COUNTRIES = "edit-countries"

    # System Settings
    SYSTEM_SETTINGS = "system-settings"
    EMAIL_CONFIG = "email-config"
    BACKUP_RESTORE = "backup-restore"
    AUDIT_LOGS = "audit-logs"
    PERMISSION_MATRIX = "permission-matrix"

    # Code Table Management
    CODE_TABLE_SETUP = "code-table-setup"
    GLOBAL_TABLES = "global-tables"

    # Data Operations
    EXPORT_DATA = "export-data"
    IMPORT_DATA = "import-data"
    VIEW_REPORTS = "view-reports"

    # File Operations
    UPLOAD_FILES = "upload-files"
    DOWNLOAD_FILES = "download-files"
    DELETE_FILES = "delete-files"
    MANAGE_ATTACHMENTS = "manage-attachments"


A = PERMISSION_ACTIONS


# =====================================================
# ACTIONS GROUPED BY FEATURE AREA (matrix column order)
# =====================================================
ACTION_CATEGORIES: Dict[str, List[str]] = {
    "Case Management": [
        A.CREATE_CASE,
        A.VIEW_CASES,
        A.AMEND_CASE,
        A.UPDATE_CASE_STATUS,
        A.DELETE_CASE,
        A.EDIT_SETS,
        A.CANCEL_CASE,
        A.BOOKING_CALENDAR,
    ],
    "Status Transitions": [
        A.PROCESS_ORDER,
        A.ORDER_PROCESSED,
        A.SALES_APPROVAL,
        A.PENDING_DELIVERY_HOSPITAL,
        A.DELIVERED_HOSPITAL,
        A.CASE_COMPLETED,
        A.PENDING_DELIVERY_OFFICE,
        A.DELIVERED_OFFICE,
        A.TO_BE_BILLED,
        A.CASE_CLOSED,
    ],
    "User Management": [
        A.CREATE_USER,
        A.EDIT_USER,
        A.EDIT_COUNTRIES,
        A.RESET_PASSWORD,
        A.DELETE_USER,
        A.VIEW_USERS,
        A.ENABLE_DISABLE_USER,
    ],
    "System Settings": [
        A.SYSTEM_SETTINGS,
        A.EMAIL_CONFIG,
        A.BACKUP_RESTORE,
        A.AUDIT_LOGS,
        A.PERMISSION_MATRIX,
    ],
    "Code Table Management": [
        A.CODE_TABLE_SETUP,
        A.GLOBAL_TABLES,
    ],
    "Data Operations": [
        A.EXPORT_DATA,
        A.IMPORT_DATA,
        A.VIEW_REPORTS,
    ],
    "File Operations": [
        A.UPLOAD_FILES,
        A.DOWNLOAD_FILES,
        A.DELETE_FILES,
        A.MANAGE_ATTACHMENTS,
    ],
}

ALL_ACTIONS: List[str] = [
    action_id for actions in ACTION_CATEGORIES.values() for action_id in actions
]


def is_known_action(action_id: str) -> bool:
    return action_id in ALL_ACTIONS


# =====================================================
# ROLES
# =====================================================
ROLES: Dict[str, str] = {
    "admin": "Admin",
    "operations": "Operations",
    "operations-manager": "Operations Manager",
    "sales": "Sales",
    "sales-manager": "Sales Manager",
    "driver": "Driver",
    "it": "IT",
}

# Fallback for callers with no role in their metadata; holds no grants.
GUEST_ROLE = "guest"


def matrix_roles(admin_role: str = "admin") -> List[str]:
    """Roles shown in the permission matrix. Admin is never edited."""
    return [role_id for role_id in ROLES if role_id != admin_role]


# =====================================================
# DEFAULT MATRIX: seeded grants per role
# =====================================================
# Admin is intentionally absent: it bypasses the matrix.
DEFAULT_ROLE_PERMISSIONS: Dict[str, List[str]] = {

    # Order processing and case management
    "operations": [
        A.CREATE_CASE, A.VIEW_CASES, A.AMEND_CASE, A.UPDATE_CASE_STATUS,
        A.BOOKING_CALENDAR,
        A.PROCESS_ORDER, A.ORDER_PROCESSED, A.PENDING_DELIVERY_HOSPITAL,
        A.UPLOAD_FILES, A.DOWNLOAD_FILES,
        A.VIEW_REPORTS,
    ],

    # Operations + oversight
    "operations-manager": [
        A.CREATE_CASE, A.VIEW_CASES, A.AMEND_CASE, A.UPDATE_CASE_STATUS,
        A.DELETE_CASE, A.EDIT_SETS, A.BOOKING_CALENDAR, A.CANCEL_CASE,
        A.PROCESS_ORDER, A.ORDER_PROCESSED, A.PENDING_DELIVERY_HOSPITAL,
        A.UPLOAD_FILES, A.DOWNLOAD_FILES, A.MANAGE_ATTACHMENTS,
        A.VIEW_REPORTS, A.EXPORT_DATA,
    ],

    # Case completion and office delivery
    "sales": [
        A.CREATE_CASE, A.VIEW_CASES, A.AMEND_CASE, A.UPDATE_CASE_STATUS,
        A.BOOKING_CALENDAR,
        A.SALES_APPROVAL, A.CASE_COMPLETED, A.PENDING_DELIVERY_OFFICE,
        A.DELIVERED_OFFICE, A.TO_BE_BILLED, A.CASE_CLOSED,
        A.UPLOAD_FILES, A.DOWNLOAD_FILES,
        A.VIEW_REPORTS,
    ],

    # Sales + oversight
    "sales-manager": [
        A.CREATE_CASE, A.VIEW_CASES, A.AMEND_CASE, A.UPDATE_CASE_STATUS,
        A.BOOKING_CALENDAR,
        A.SALES_APPROVAL, A.CASE_COMPLETED, A.PENDING_DELIVERY_OFFICE,
        A.DELIVERED_OFFICE, A.TO_BE_BILLED, A.CASE_CLOSED,
        A.UPLOAD_FILES, A.DOWNLOAD_FILES, A.MANAGE_ATTACHMENTS,
        A.VIEW_REPORTS, A.EXPORT_DATA,
    ],

    # Delivery operations only
    "driver": [
        A.VIEW_CASES, A.UPDATE_CASE_STATUS, A.BOOKING_CALENDAR,
        A.PENDING_DELIVERY_HOSPITAL, A.DELIVERED_HOSPITAL,
        A.PENDING_DELIVERY_OFFICE, A.DELIVERED_OFFICE,
        A.TO_BE_BILLED, A.CASE_CLOSED,
        A.UPLOAD_FILES, A.DOWNLOAD_FILES,
    ],

    # Technical support, user management and status transitions
    "it": [
        A.VIEW_CASES, A.CREATE_CASE, A.AMEND_CASE, A.UPDATE_CASE_STATUS,
        A.EDIT_SETS,
        A.PROCESS_ORDER, A.ORDER_PROCESSED, A.PENDING_DELIVERY_HOSPITAL,
        A.DELIVERED_HOSPITAL, A.CASE_COMPLETED, A.PENDING_DELIVERY_OFFICE,
        A.DELIVERED_OFFICE, A.TO_BE_BILLED, A.CASE_CLOSED,
        A.VIEW_USERS, A.CREATE_USER, A.EDIT_USER, A.RESET_PASSWORD,
        A.DELETE_USER, A.ENABLE_DISABLE_USER,
        A.SYSTEM_SETTINGS, A.EMAIL_CONFIG, A.CODE_TABLE_SETUP,
        A.GLOBAL_TABLES, A.BACKUP_RESTORE, A.AUDIT_LOGS,
        A.IMPORT_DATA, A.EXPORT_DATA,
        A.UPLOAD_FILES, A.DOWNLOAD_FILES, A.DELETE_FILES,
        A.VIEW_REPORTS,
    ],
}
