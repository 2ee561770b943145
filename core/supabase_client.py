# core/supabase_client.py

from typing import Optional

from supabase import acreate_client, AsyncClient
from core.config import settings
from core.logging_config import logger


# ============================================================
# Supabase Client Factory (ALWAYS service role)
# ============================================================

async def get_supabase_client() -> Optional[AsyncClient]:
    """
    Creates an async Supabase client using the SERVICE ROLE KEY.
    REQUIRED for:
        - full read/write on the permissions table (bypasses RLS)
        - auth.get_user token validation
    Returns None when credentials are missing or the client cannot be built.
    """
    supabase_url = settings.SUPABASE_URL
    supabase_key = settings.SUPABASE_SERVICE_ROLE_KEY  # MUST be service-role

    if not supabase_url or not supabase_key:
        logger.error("Missing Supabase credentials")
        logger.error(f"   URL: {supabase_url}")
        logger.error(f"   SERVICE ROLE KEY: {'SET' if supabase_key else 'MISSING'}")
        return None

    try:
        return await acreate_client(supabase_url, supabase_key)
    except Exception as e:
        logger.error(f"Supabase Init Error: {e}", exc_info=True)
        return None


# ============================================================
# Ping Supabase for health checks
# ============================================================

async def ping_supabase(client: Optional[AsyncClient] = None) -> dict:
    """
    Simple connectivity check against the permissions table.
    Does NOT query auth tables.
    """
    if client is None:
        client = await get_supabase_client()
    if client is None:
        return {"service": "Supabase", "status": "not_configured"}

    table = settings.PERMISSIONS_TABLE
    try:
        res = await client.table(table).select("*").limit(1).execute()
    except Exception as err:
        logger.error(f"Supabase Ping Error: {err}", exc_info=True)
        return {
            "service": "Supabase",
            "status": "error",
            "tables": {table: {"status": "error", "detail": str(err)}},
        }

    return {
        "service": "Supabase",
        "status": "ok",
        "tables": {table: {"status": "ok", "rows_found": len(res.data or [])}},
    }
