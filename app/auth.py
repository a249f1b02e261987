import logging
from typing import Optional

from fastapi import Header, HTTPException

from .config import ADMIN_API_KEY
from .webhook_security import constant_time_compare

logger = logging.getLogger(__name__)


async def require_admin(x_admin_key: Optional[str] = Header(None)) -> None:
    """
    Guard for admin endpoints using a shared key in the X-Admin-Key header.
    Without ADMIN_API_KEY configured the endpoints are open (development only).
    """
    if not ADMIN_API_KEY:
        return

    if not x_admin_key or not constant_time_compare(x_admin_key, ADMIN_API_KEY):
        logger.warning("⚠️ Admin request rejected: missing or invalid X-Admin-Key")
        raise HTTPException(status_code=401, detail="Invalid admin key")
