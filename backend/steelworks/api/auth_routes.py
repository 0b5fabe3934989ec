"""
JWT Authentication routes — login, me, and team administration.

Accounts are created by an administrator (POST /api/users) or the
set_password script; there is no self-registration.
"""
import re
from datetime import datetime, timedelta, timezone
from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel
from passlib.context import CryptContext
from jose import jwt
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from steelworks.config import ACCESS_TOKEN_EXPIRE_MINUTES, JWT_ALGORITHM, JWT_SECRET_KEY
from steelworks.db import get_db
from steelworks.api.deps import get_current_user, require_permission
from steelworks.models.orm_models import User
from steelworks.services.audit import log_audit
from steelworks.services.errors import InvalidValueError
from steelworks.services.permissions import ROLES, get_permissions

# Simple RFC-5322 subset email regex (no external library required)
_EMAIL_RE = re.compile(r"^[a-zA-Z0-9_.+-]+@[a-zA-Z0-9-]+\.[a-zA-Z0-9-.]+$")
_MIN_PASSWORD_LEN = 8


def _validate_email(email: str) -> str:
    """Normalise and validate an email address."""
    email = email.strip().lower()
    if not _EMAIL_RE.match(email):
        raise InvalidValueError("Invalid email format")
    return email


def _validate_password(password: str) -> None:
    if len(password) < _MIN_PASSWORD_LEN:
        raise InvalidValueError(f"Password must be at least {_MIN_PASSWORD_LEN} characters")


router = APIRouter(prefix="/api/auth", tags=["Authentication"])
users_router = APIRouter(prefix="/api/users", tags=["Team"])

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


class LoginRequest(BaseModel):
    email: str
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user_id: str
    email: str
    role: str
    full_name: str = ""


class UserCreateRequest(BaseModel):
    email: str
    password: str
    full_name: str = ""
    role: str = "VIEWER"


def create_access_token(data: dict) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode["exp"] = expire
    return jwt.encode(to_encode, JWT_SECRET_KEY, algorithm=JWT_ALGORITHM)


def serialize_user(user: User) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "full_name": user.full_name or "",
        "role": user.role,
        "is_active": bool(user.is_active),
        "created_at": user.created_at.isoformat() if user.created_at else None,
    }


@router.post("/login", response_model=TokenResponse)
async def login(req: LoginRequest, db: AsyncSession = Depends(get_db)):
    # Same answer for every failure so account existence is not confirmed
    email = req.email.strip().lower()
    result = await db.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()
    if not user or not pwd_context.verify(req.password, user.hashed_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
        )
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account deactivated")

    token = create_access_token({"sub": user.id, "email": user.email, "role": user.role})
    return TokenResponse(
        access_token=token,
        user_id=user.id,
        email=user.email,
        role=user.role,
        full_name=user.full_name or "",
    )


@router.get("/me")
async def get_me(user: User = Depends(get_current_user)):
    """Current user plus the flattened permission list for their role."""
    return {**serialize_user(user), "permissions": get_permissions(user.role)}


@users_router.get("")
async def list_users(
    _: User = Depends(require_permission("team:read")),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(select(User).order_by(User.email))
    return [serialize_user(u) for u in result.scalars().all()]


@users_router.post("", status_code=201)
async def create_user(
    req: UserCreateRequest,
    admin: User = Depends(require_permission("team:edit")),
    db: AsyncSession = Depends(get_db),
):
    email = _validate_email(req.email)
    _validate_password(req.password)
    if req.role not in ROLES:
        raise InvalidValueError(f"Unknown role '{req.role}'", extra={"allowed": list(ROLES)})

    result = await db.execute(select(User).where(User.email == email))
    if result.scalar_one_or_none():
        raise InvalidValueError("Email already registered")

    user = User(
        email=email,
        hashed_password=pwd_context.hash(req.password),
        full_name=req.full_name or None,
        role=req.role,
    )
    db.add(user)
    await db.flush()
    log_audit(db, admin, "CREATE", "User", user.id, metadata={"email": email, "role": req.role})
    await db.commit()
    return serialize_user(user)
