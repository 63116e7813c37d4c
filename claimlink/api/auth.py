from fastapi import Header, HTTPException
from claimlink.settings import settings


def require_api_key(x_api_key: str = Header(default="", alias="x-api-key")):
    """Gateway/client key. Empty API_KEY disables the check (private network deployments)."""
    if not settings.API_KEY:
        return
    if x_api_key != settings.API_KEY:
        raise HTTPException(status_code=401, detail="Invalid API key")


def require_admin(x_admin_key: str = Header(default="", alias="x-admin-key")):
    """Operator key for /admin routes."""
    if not settings.ADMIN_RBAC_ENABLED:
        return
    # Enabled without a configured key: reject all
    if not settings.ADMIN_API_KEY:
        raise HTTPException(status_code=403, detail="Admin access disabled (no key configured)")
    if x_admin_key != settings.ADMIN_API_KEY:
        raise HTTPException(status_code=403, detail="Invalid admin key")
