from typing import Optional
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from .database import get_db
from .models import UserProfile
from .utils.security import verify_token
import logging

logger = logging.getLogger(__name__)

security = HTTPBearer()
optional_security = HTTPBearer(auto_error=False)


def _resolve_user(token: str, db: Session) -> Optional[UserProfile]:
    payload = verify_token(token)
    if payload is None:
        logger.info("Token verification failed")
        return None

    user_id = payload.get("sub")
    if not user_id:
        logger.info("No user id in token payload")
        return None

    user = db.query(UserProfile).filter(UserProfile.id == str(user_id)).first()
    if user is None:
        logger.info(f"No user profile for id: {user_id}")
    return user


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db)
) -> UserProfile:
    """Get current authenticated user"""
    user = _resolve_user(credentials.credentials, db)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


async def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(optional_security),
    db: Session = Depends(get_db)
) -> Optional[UserProfile]:
    """Authenticated user, or None when the request carries no valid token"""
    if credentials is None:
        return None
    return _resolve_user(credentials.credentials, db)
