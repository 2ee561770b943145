# core/errors.py

from fastapi import HTTPException


# PostgREST surfaces Postgres SQLSTATE codes; 23505 = unique_violation
UNIQUE_VIOLATION_CODE = "23505"


# ============================================================
# Permission store exceptions
# ============================================================

class PermissionStoreError(Exception):
    """Base class for failures raised by the permission store adapter."""

    kind = "store_error"

    def __init__(self, message: str, *, cause: Exception = None):
        super().__init__(message)
        self.cause = cause


class StoreUnavailable(PermissionStoreError):
    """Transport, auth or configuration failure talking to Supabase."""

    kind = "store_unavailable"


class ConflictOnWrite(PermissionStoreError):
    """
    Duplicate-key rejection on insert.
    The store adapter recovers from this itself; callers never see it.
    """

    kind = "conflict"


class InvalidPermissionChange(PermissionStoreError):
    """A matrix change that cannot be written (empty role/resource/action)."""

    kind = "invalid_change"


# ============================================================
# Supabase error helpers
# ============================================================

def extract_supabase_error(error: Exception) -> str:
    """
    Safely extract readable details from Supabase Python client errors.
    Handles:
      • PostgREST errors
      • GoTrue (Auth) errors
      • Generic Python exceptions
    """

    # Case 1: PostgREST / GoTrue errors expose .message
    message = getattr(error, "message", None)
    if message:
        return str(message)

    # Case 2: errors with args (common)
    if getattr(error, "args", None):
        return str(error.args[0])

    # Case 3: Plain string fallback
    return str(error) or "Unknown Supabase error"


def is_conflict_error(error: Exception) -> bool:
    """True when Supabase rejected a write because the unique key already exists."""
    if isinstance(error, ConflictOnWrite):
        return True

    if str(getattr(error, "code", "") or "") == UNIQUE_VIOLATION_CODE:
        return True

    detail = extract_supabase_error(error).lower()
    return "duplicate key" in detail or "unique constraint" in detail


def handle_supabase_error(error: Exception, operation: str = "Database operation", status_code: int = 500) -> HTTPException:
    """
    Handle Supabase errors with consistent formatting.
    Returns HTTPException (doesn't raise) so caller can customize or re-raise.

    Args:
        error: The exception that occurred
        operation: Description of what operation failed (e.g., "Failed to update permission matrix")
        status_code: HTTP status code (default 500)

    Returns:
        HTTPException with standardized error message
    """
    from core.logging_config import logger

    error_detail = extract_supabase_error(error)
    logger.error(f"{operation}: {error_detail}")

    if isinstance(error, StoreUnavailable):
        return HTTPException(status_code=503, detail=f"{operation}: Permission store unavailable")

    # Provide user-friendly messages for common errors
    error_lower = error_detail.lower()
    if is_conflict_error(error):
        return HTTPException(status_code=400, detail=f"{operation}: Record already exists")
    elif "not found" in error_lower or "does not exist" in error_lower:
        return HTTPException(status_code=404, detail=f"{operation}: Resource not found")
    else:
        return HTTPException(status_code=status_code, detail=f"{operation} failed")
