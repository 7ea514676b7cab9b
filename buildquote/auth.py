"""
Acting-user resolution.

Identity is established upstream; requests carry the user id in the
X-User-Id header and it is resolved against the users table here.
"""

from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from .database import get_db
from . import models


# --- FastAPI dependency: get current user from the identity header ---

def get_current_user(
    x_user_id: Optional[str] = Header(default=None),
    db: Session = Depends(get_db),
) -> models.User:
    """FastAPI dependency: resolves X-User-Id, returns an active User object."""
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
        )

    user = db.query(models.User).filter(models.User.id == x_user_id).first()
    if not user or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
        )

    return user
