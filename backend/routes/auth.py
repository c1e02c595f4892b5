# backend/routes/auth.py
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Request, Response, Cookie, Header
from fastapi.security import HTTPAuthorizationCredentials
from jose import JWTError, ExpiredSignatureError
from sqlalchemy import func
from sqlalchemy.orm import Session

from config import settings
from database import get_db, utcnow
from utils.hashing import get_password_hash, verify_password
from utils.tokenJWT import (
    bearer_scheme, create_access_token, create_refresh_token, create_reset_token,
    decode_token, get_current_user, user_from_token, RESET_TOKEN,
)
from utils.audit import write_log, client_ip
from utils.errors import AuthenticationError, AccountLockedError, ConflictError, ValidationError
from utils import response
from models import users as models
from schemas import user as schemas
from schemas.common import Envelope
from routes.cart import merge_guest_cart, SESSION_HEADER

router = APIRouter(prefix="/auth", tags=["Auth"])
logger = logging.getLogger(__name__)

REFRESH_COOKIE = "refresh_token"


def _access_expiry() -> datetime:
    return datetime.now(timezone.utc) + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)


def _issue_refresh_token(db: Session, user: models.User) -> str:
    token = create_refresh_token(user.id)
    db.add(models.RefreshToken(
        token=token,
        user_id=user.id,
        expires_at=utcnow() + timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
    ))
    db.commit()
    return token


def _set_refresh_cookie(resp: Response, token: str):
    resp.set_cookie(
        REFRESH_COOKIE,
        token,
        httponly=True,
        secure=settings.ENVIRONMENT == "production",
        samesite="strict",
        max_age=settings.REFRESH_TOKEN_EXPIRE_DAYS * 24 * 60 * 60,
    )


# Register a new user
@router.post("/register", response_model=Envelope[schemas.RegisterResponse], status_code=201)
def register(user: schemas.UserCreate, request: Request, db: Session = Depends(get_db)):
    # Normalize email input
    normalized_email = user.email.strip().lower()

    # Check for existing user
    db_user = db.query(models.User).filter(func.lower(models.User.email) == normalized_email).first()
    if db_user:
        write_log(
            db,
            user_id=None,
            action="REGISTER",
            resource="auth",
            status="FAIL",
            ip=client_ip(request),
            meta={"email": normalized_email, "reason": "Email exists"},
        )
        raise ConflictError("Email already registered", code="EMAIL_EXISTS")

    # Create new user instance with hashed password and default preferences
    new_user = models.User(
        email=normalized_email,
        password_hash=get_password_hash(user.password),
        role=models.Role.USER,
        first_name=user.first_name,
        last_name=user.last_name,
        phone=user.phone,
        gender=user.gender,
    )
    new_user.preferences = models.UserPreferences()
    db.add(new_user)
    db.commit()
    db.refresh(new_user)

    logger.info("User registered: %s", new_user.email)
    write_log(
        db,
        user_id=new_user.id,
        action="REGISTER",
        resource="auth",
        status="SUCCESS",
        ip=client_ip(request),
        meta={"email": new_user.email},
    )

    data = schemas.RegisterResponse(
        user=schemas.UserResponse.model_validate(new_user),
        token=create_access_token(new_user),
    )
    return response.ok(data, "User registered successfully")


# Authenticate user and issue JWT token
@router.post("/login", response_model=Envelope[schemas.LoginResponse])
def login(
    payload: schemas.UserLogin,
    request: Request,
    resp: Response,
    db: Session = Depends(get_db),
    session_id: Optional[str] = Header(None, alias=SESSION_HEADER),
):
    email = payload.email.strip().lower()
    db_user = db.query(models.User).filter(models.User.email == email).first()

    # Validate credentials and log failure on error
    if not db_user or not verify_password(payload.password, db_user.password_hash):
        write_log(db, user_id=(db_user.id if db_user else None), action="LOGIN", resource="auth",
                  status="FAIL", ip=client_ip(request), meta={"email": email})
        raise AuthenticationError("Invalid credentials")

    if not db_user.is_active:
        write_log(db, user_id=db_user.id, action="LOGIN", resource="auth",
                  status="FAIL", ip=client_ip(request), meta={"email": email, "reason": "Account deactivated"})
        raise AccountLockedError()

    access_token = create_access_token(db_user)
    refresh_token = _issue_refresh_token(db, db_user)
    _set_refresh_cookie(resp, refresh_token)

    # Carry over whatever the guest put in their cart
    if session_id:
        merge_guest_cart(db, db_user.id, session_id)

    logger.info("User logged in: %s", db_user.email)
    write_log(db, user_id=db_user.id, action="LOGIN", resource="auth",
              status="SUCCESS", ip=client_ip(request), meta={"email": db_user.email})

    data = schemas.LoginResponse(
        user=schemas.UserResponse.model_validate(db_user),
        token=access_token,
        expires_at=_access_expiry(),
    )
    return response.ok(data, "Login successful")


@router.get("/validate", response_model=Envelope[schemas.TokenValidation])
def validate(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
):
    if credentials is None:
        raise AuthenticationError("No token provided")
    user = user_from_token(db, credentials.credentials)
    data = schemas.TokenValidation(is_valid=True, user=schemas.UserResponse.model_validate(user))
    return response.ok(data, "Token is valid")


@router.post("/refresh", response_model=Envelope[schemas.TokenResponse])
def refresh(
    payload: Optional[schemas.TokenRefreshRequest] = None,
    refresh_cookie: Optional[str] = Cookie(None, alias=REFRESH_COOKIE),
    db: Session = Depends(get_db),
):
    token = refresh_cookie or (payload.refresh_token if payload else None)
    if not token:
        raise AuthenticationError("Refresh token required")

    stored = db.query(models.RefreshToken).filter(models.RefreshToken.token == token).first()
    if not stored or stored.expires_at < utcnow():
        raise AuthenticationError("Invalid or expired refresh token")
    if not stored.user.is_active:
        raise AccountLockedError()

    data = schemas.TokenResponse(token=create_access_token(stored.user), expires_at=_access_expiry())
    return response.ok(data, "Token refreshed successfully")


@router.post("/logout", response_model=Envelope[None])
def logout(
    request: Request,
    resp: Response,
    refresh_cookie: Optional[str] = Cookie(None, alias=REFRESH_COOKIE),
    db: Session = Depends(get_db),
):
    if refresh_cookie:
        stored = db.query(models.RefreshToken).filter(models.RefreshToken.token == refresh_cookie).first()
        if stored:
            user_id = stored.user_id
            db.delete(stored)
            db.commit()
            write_log(db, user_id=user_id, action="LOGOUT", resource="auth", status="SUCCESS",
                      ip=client_ip(request))
    resp.delete_cookie(REFRESH_COOKIE)
    return response.ok(None, "Logout successful")


@router.post("/logout-all", response_model=Envelope[None])
def logout_all(
    request: Request,
    resp: Response,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    removed = (
        db.query(models.RefreshToken)
        .filter(models.RefreshToken.user_id == current_user.id)
        .delete(synchronize_session=False)
    )
    db.commit()
    resp.delete_cookie(REFRESH_COOKIE)

    logger.info("User %s logged out from %s sessions", current_user.id, removed)
    write_log(db, user_id=current_user.id, action="LOGOUT_ALL", resource="auth", status="SUCCESS",
              ip=client_ip(request), meta={"sessions": removed})
    return response.ok(None, "Logged out from all devices")


@router.post("/forgot-password", response_model=Envelope[None])
def forgot_password(payload: schemas.ForgotPasswordRequest, request: Request, db: Session = Depends(get_db)):
    email = payload.email.strip().lower()
    user = db.query(models.User).filter(models.User.email == email).first()

    if user:
        reset_token = create_reset_token(user.id)
        # No mail transport: the link is only exposed in the development log
        if settings.is_development:
            logger.info("Password reset link: %s/reset-password?token=%s", settings.FRONTEND_URL, reset_token)
        write_log(db, user_id=user.id, action="FORGOT_PASSWORD", resource="auth", status="SUCCESS",
                  ip=client_ip(request))
    else:
        logger.info("Password reset requested for unknown email")

    # Same answer whether the email exists or not
    return response.ok(None, "If an account exists with that email, a reset link has been sent")


@router.post("/reset-password", response_model=Envelope[None])
def reset_password(payload: schemas.ResetPasswordRequest, request: Request, db: Session = Depends(get_db)):
    try:
        claims = decode_token(payload.token)
    except ExpiredSignatureError:
        raise ValidationError("Reset token expired", code="TOKEN_EXPIRED")
    except JWTError:
        raise ValidationError("Invalid reset token", code="INVALID_TOKEN")

    user_id = str(claims.get("sub") or "")
    if claims.get("type") != RESET_TOKEN or not user_id.isdigit():
        raise ValidationError("Invalid reset token", code="INVALID_TOKEN")

    user = db.query(models.User).filter(models.User.id == int(user_id)).first()
    if not user:
        raise ValidationError("Invalid reset token", code="INVALID_TOKEN")

    user.password_hash = get_password_hash(payload.new_password)
    # A reset signs the user out everywhere
    db.query(models.RefreshToken).filter(models.RefreshToken.user_id == user.id).delete(synchronize_session=False)
    db.commit()

    logger.info("Password reset for user %s", user.id)
    write_log(db, user_id=user.id, action="RESET_PASSWORD", resource="auth", status="SUCCESS",
              ip=client_ip(request))
    return response.ok(None, "Password reset successful")


@router.post("/change-password", response_model=Envelope[None])
def change_password(
    payload: schemas.ChangePasswordRequest,
    request: Request,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    if not verify_password(payload.current_password, current_user.password_hash):
        write_log(db, user_id=current_user.id, action="CHANGE_PASSWORD", resource="auth", status="FAIL",
                  ip=client_ip(request))
        raise ValidationError("Current password is incorrect", code="INVALID_CURRENT_PASSWORD")

    current_user.password_hash = get_password_hash(payload.new_password)
    db.commit()

    logger.info("Password changed for user %s", current_user.id)
    write_log(db, user_id=current_user.id, action="CHANGE_PASSWORD", resource="auth", status="SUCCESS",
              ip=client_ip(request))
    return response.ok(None, "Password changed successfully")


# Retrieve current authenticated user details
@router.get("/me", response_model=Envelope[schemas.UserResponse])
def me(current_user: models.User = Depends(get_current_user)):
    return response.ok(schemas.UserResponse.model_validate(current_user))
