from jose import jwt, JWTError
from datetime import datetime, timedelta, timezone
from typing import Optional
from config.settings import settings

def create_jwt_token(data: dict, expires_delta: timedelta = None) -> str:
    """Create JWT token"""
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(seconds=settings.JWT_EXPIRATION)

    to_encode.update({"exp": expire})
    encoded_jwt = jwt.encode(to_encode, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)
    return encoded_jwt

def verify_jwt_token(token: str) -> Optional[dict]:
    """Verify JWT token"""
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
        return payload
    except JWTError:
        return None

def user_id_from_token(token: Optional[str]) -> Optional[int]:
    """Extract the user id claim from a session token, or None if absent/invalid"""
    if not token:
        return None
    payload = verify_jwt_token(token)
    if not payload:
        return None
    raw = payload.get("userId", payload.get("sub"))
    try:
        return int(raw) if raw is not None else None
    except (TypeError, ValueError):
        return None
