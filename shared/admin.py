"""Admin gate shared by the back-office endpoints.

Only one mailbox may use the back office. The storefront's auth provider
puts the signed-in user's address in the ``X-User-Email`` header.
"""

import logging
import os
from typing import Optional

from fastapi import Header, HTTPException, status

logger = logging.getLogger(__name__)

ADMIN_EMAIL = os.getenv("ADMIN_EMAIL", "admin@gear-store.ge")


def is_admin_email(email: Optional[str]) -> bool:
    return bool(email) and email.strip().lower() == ADMIN_EMAIL.lower()


async def require_admin(x_user_email: Optional[str] = Header(None)) -> str:
    """FastAPI dependency rejecting anyone but the configured admin."""
    if not is_admin_email(x_user_email):
        logger.warning(f"Rejected admin request from {x_user_email or 'anonymous'}")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return x_user_email
