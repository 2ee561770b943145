# core/canonicalizer.py

"""
Maps persisted (resource, action) pairs onto canonical action ids.

The permissions table has been written by several generations of the app,
so the same feature appears under different spellings. Resolution walks an
ordered rule table (first match wins) and falls back to "{resource}-{action}".
"""

from collections import Counter
from dataclasses import dataclass
from threading import Lock
from typing import Callable, Dict, List, Optional, Tuple

from core.logging_config import get_logger, logger
from core.permissions import PERMISSION_ACTIONS as A


WILDCARD = "*"
UNKNOWN = "unknown"

# Resources used by older writers that stored the canonical id in `action`
PASSTHROUGH_RESOURCES = ("default", "other")

unmapped_logger = get_logger("permissions.unmapped")

UnmappedCallback = Callable[[str, str], None]


@dataclass(frozen=True)
class CanonicalRule:
    """
    One row of the rule table.

    resource / action may be "*". When action_id is None the persisted
    action is already canonical and is returned unchanged.
    """

    resource: str
    action: str
    action_id: Optional[str] = None

    def matches(self, resource: str, action: str) -> bool:
        return (
            self.resource in (WILDCARD, resource)
            and self.action in (WILDCARD, action)
        )

    def resolve(self, action: str) -> str:
        return self.action_id if self.action_id is not None else action

    @property
    def is_literal(self) -> bool:
        return (
            self.action_id is not None
            and WILDCARD not in (self.resource, self.action)
        )


# ============================================================
# RULE TABLE (checked in order)
# ============================================================
CANONICAL_RULES: List[CanonicalRule] = [
    # System settings
    CanonicalRule("settings", "system", A.SYSTEM_SETTINGS),
    CanonicalRule("settings", "system-settings", A.SYSTEM_SETTINGS),
    CanonicalRule("settings", "email-config", A.EMAIL_CONFIG),
    CanonicalRule("settings", "permission-matrix", A.PERMISSION_MATRIX),
    CanonicalRule("settings", "code-table-setup", A.CODE_TABLE_SETUP),
    CanonicalRule("settings", "backup-restore", A.BACKUP_RESTORE),

    # Logs
    CanonicalRule("logs", "audit", A.AUDIT_LOGS),
    CanonicalRule("logs", "audit-logs", A.AUDIT_LOGS),

    # Case management
    CanonicalRule("case", "view", A.VIEW_CASES),
    CanonicalRule("case", "create", A.CREATE_CASE),
    CanonicalRule("case", "amend", A.AMEND_CASE),
    CanonicalRule("case", "update-status", A.UPDATE_CASE_STATUS),
    CanonicalRule("case", "cancel", A.CANCEL_CASE),
    CanonicalRule("case", "delete", A.DELETE_CASE),
    CanonicalRule("case", "closed", A.CASE_CLOSED),
    CanonicalRule("calendar", "booking", A.BOOKING_CALENDAR),

    # Status transitions
    CanonicalRule("order", "process", A.PROCESS_ORDER),
    CanonicalRule("order", "processed", A.ORDER_PROCESSED),
    CanonicalRule("delivery", "pending-hospital", A.PENDING_DELIVERY_HOSPITAL),
    CanonicalRule("delivery", "delivered-hospital", A.DELIVERED_HOSPITAL),
    CanonicalRule("delivery", "pending-office", A.PENDING_DELIVERY_OFFICE),
    CanonicalRule("delivery", "delivered-office", A.DELIVERED_OFFICE),
    CanonicalRule("billing", "to-be-billed", A.TO_BE_BILLED),

    # Files, reports, data
    CanonicalRule("files", "upload", A.UPLOAD_FILES),
    CanonicalRule("files", "download", A.DOWNLOAD_FILES),
    CanonicalRule("files", "delete", A.DELETE_FILES),
    CanonicalRule("attachments", "manage", A.MANAGE_ATTACHMENTS),
    CanonicalRule("reports", "view", A.VIEW_REPORTS),
    CanonicalRule("data", "export", A.EXPORT_DATA),
    CanonicalRule("data", "import", A.IMPORT_DATA),

    # Legacy rows that already carry the canonical id
    *[CanonicalRule(resource, WILDCARD) for resource in PASSTHROUGH_RESOURCES],
]


def normalize_part(value: Optional[str]) -> str:
    """Trim + lowercase; missing or blank values become 'unknown'."""
    if value is None:
        return UNKNOWN
    cleaned = str(value).strip().lower()
    return cleaned or UNKNOWN


def canonicalize(
    resource: Optional[str],
    action: Optional[str],
    on_unmapped: Optional[UnmappedCallback] = None,
    rules: Optional[List[CanonicalRule]] = None,
) -> str:
    """
    Resolve a persisted (resource, action) pair to its canonical action id.

    Never raises. When no rule matches, the id is composed as
    "{resource}-{action}" and on_unmapped (if given) is told about the pair.
    """
    resource = normalize_part(resource)
    action = normalize_part(action)

    for rule in CANONICAL_RULES if rules is None else rules:
        if rule.matches(resource, action):
            return rule.resolve(action)

    if on_unmapped is not None:
        try:
            on_unmapped(resource, action)
        except Exception as e:
            logger.error(f"Unmapped pair reporter failed for {resource}/{action}: {e}")

    return f"{resource}-{action}"


def decanonicalize(action_id: str, rules: Optional[List[CanonicalRule]] = None) -> Tuple[str, str]:
    """
    Pick the (resource, action) spelling used when writing action_id.

    The first literal rule targeting the id wins; anything else is stored
    under the passthrough resource so canonicalize() gives it back unchanged.
    """
    action_id = normalize_part(action_id)

    for rule in CANONICAL_RULES if rules is None else rules:
        if rule.is_literal and rule.action_id == action_id:
            return rule.resource, rule.action

    return PASSTHROUGH_RESOURCES[-1], action_id


# ============================================================
# Observability for fallback resolutions
# ============================================================

class UnmappedPairReporter:
    """
    Counts (resource, action) pairs that fell through to the composed id.

    The first sighting of a pair is logged at WARNING so it can be curated
    into CANONICAL_RULES; repeats are logged at DEBUG.
    """

    def __init__(self):
        self._counts: Counter = Counter()
        self._lock = Lock()

    def __call__(self, resource: str, action: str):
        with self._lock:
            self._counts[(resource, action)] += 1
            first = self._counts[(resource, action)] == 1

        if first:
            unmapped_logger.warning(
                f"Unmapped permission pair {resource}/{action} -> {resource}-{action}"
            )
        else:
            unmapped_logger.debug(f"Unmapped permission pair seen again: {resource}/{action}")

    def snapshot(self) -> List[Dict[str, object]]:
        with self._lock:
            items = sorted(self._counts.items(), key=lambda item: (-item[1], item[0]))
        return [
            {
                "resource": resource,
                "action": action,
                "action_id": f"{resource}-{action}",
                "count": count,
            }
            for (resource, action), count in items
        ]

    def reset(self):
        with self._lock:
            self._counts.clear()
