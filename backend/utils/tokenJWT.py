# utils/tokenJWT.py
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import jwt, JWTError, ExpiredSignatureError
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from config import settings
from database import get_db
from models.users import User, Role
from utils.errors import AuthenticationError, AuthorizationError

# Missing credentials are reported through AuthenticationError (401), not FastAPI's default 403
bearer_scheme = HTTPBearer(auto_error=False)

ACCESS_TOKEN = "access"
REFRESH_TOKEN = "refresh"
RESET_TOKEN = "password_reset"


def _encode(claims: dict, secret: str, expires_delta: timedelta) -> str:
    to_encode = claims.copy()
    to_encode["exp"] = datetime.now(timezone.utc) + expires_delta
    return jwt.encode(to_encode, secret, algorithm=settings.ALGORITHM)


# Generate a new JWT access token
def create_access_token(user: User, expires_delta: Optional[timedelta] = None) -> str:
    role = Role(user.role).value
    claims = {
        "sub": str(user.id),
        "email": user.email,
        "role": role,
        "jti": str(uuid.uuid4()),
        "type": ACCESS_TOKEN,
    }
    return _encode(claims, settings.SECRET_KEY, expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))


# Refresh tokens use their own secret so they can never pass as access tokens
def create_refresh_token(user_id: int) -> str:
    claims = {"sub": str(user_id), "type": REFRESH_TOKEN, "jti": str(uuid.uuid4())}
    return _encode(claims, settings.REFRESH_SECRET_KEY, timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS))


def create_reset_token(user_id: int, expires_delta: Optional[timedelta] = None) -> str:
    claims = {"sub": str(user_id), "type": RESET_TOKEN}
    return _encode(claims, settings.SECRET_KEY, expires_delta or timedelta(minutes=settings.RESET_TOKEN_EXPIRE_MINUTES))


def decode_token(token: str, secret: Optional[str] = None) -> dict:
    """Raises jose's JWTError (or ExpiredSignatureError) for bad tokens."""
    return jwt.decode(token, secret or settings.SECRET_KEY, algorithms=[settings.ALGORITHM])


def user_from_token(db: Session, token: str) -> User:
    try:
        payload = decode_token(token)
    except ExpiredSignatureError:
        raise AuthenticationError("Token expired")
    except JWTError:
        raise AuthenticationError("Invalid token")

    user_id = payload.get("sub")
    # Ensure this is an access token carrying a subject
    if not str(user_id or "").isdigit() or payload.get("type") != ACCESS_TOKEN:
        raise AuthenticationError("Invalid token")

    user = db.query(User).filter(User.id == int(user_id)).first()
    if user is None:
        raise AuthenticationError("User not found")
    if not user.is_active:
        raise AuthenticationError("Account is deactivated")
    return user


# Retrieve the currently authenticated user based on the JWT token
def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db)
) -> User:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise AuthenticationError("Authentication required")
    return user_from_token(db, credentials.credentials)


# Same as get_current_user, but guests get None instead of an error
def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db)
) -> Optional[User]:
    if credentials is None:
        return None
    try:
        return user_from_token(db, credentials.credentials)
    except AuthenticationError:
        return None


# Dependency factory for Role-Based Access Control
def role_required(*allowed_roles):
    def _checker(current_user: User = Depends(get_current_user)):
        if allowed_roles and current_user.role not in allowed_roles:
            raise AuthorizationError("Admin access required" if allowed_roles == ("ADMIN",) else "Insufficient permissions")
        return current_user
    return _checker
