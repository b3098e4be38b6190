"""
Authentication Endpoints
Handles registration, login and the current user's profile
"""

from fastapi import APIRouter, Depends, Query, status
from pydantic import EmailStr
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from app.core.auth import CurrentUser, get_current_user
from app.core.error_handling import AppException, ConflictException, NotFoundException, UnauthorizedException
from app.core.security import (
    check_login_attempts,
    create_access_token,
    hash_password,
    record_login_attempt,
    verify_password,
)
from app.models import User
from app.schemas.auth import (
    EmailExistsResponse,
    LoginRequest,
    LoginResponse,
    RegisterRequest,
    UserResponse,
)

router = APIRouter(prefix="/auth", tags=["Authentication"])


async def _find_user_by_email(db: AsyncSession, email: str):
    result = await db.execute(select(User).where(func.lower(User.email) == email.strip().lower()))
    return result.scalar_one_or_none()


@router.get("/exists", response_model=EmailExistsResponse)
async def email_exists(
    email: EmailStr = Query(...),
    db: AsyncSession = Depends(get_db)
):
    """Tell the sign-up form whether an account already uses ``email``"""
    return {"exists": await _find_user_by_email(db, email) is not None}


@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def register(
    body: RegisterRequest,
    db: AsyncSession = Depends(get_db)
):
    """
    User Registration Endpoint

    Raises:
        ConflictException: If the email is already registered
    """
    if await _find_user_by_email(db, body.email):
        raise ConflictException("email_already_exists")

    user = User(
        email=body.email.strip().lower(),
        full_name=body.fullName,
        password_hash=hash_password(body.password),
    )
    db.add(user)
    await db.commit()

    return user.to_public_dict()


@router.post("/login", response_model=LoginResponse)
async def login(
    body: LoginRequest,
    db: AsyncSession = Depends(get_db)
):
    """
    User Login Endpoint

    Authenticates with email and password and returns a JWT whose ``sub`` is the user id.

    Raises:
        UnauthorizedException: If credentials are invalid
    """
    identifier = body.email.strip().lower()
    if not check_login_attempts(identifier):
        raise AppException("too_many_login_attempts", status_code=status.HTTP_429_TOO_MANY_REQUESTS)

    user = await _find_user_by_email(db, identifier)
    if not user or not verify_password(body.password, user.password_hash):
        record_login_attempt(identifier, success=False)
        raise UnauthorizedException("invalid_credentials")

    record_login_attempt(identifier, success=True)

    token = create_access_token({"sub": user.id, "email": user.email, "role": user.role})
    return {
        "token": token,
        "user": {
            "id": user.id,
            "email": user.email,
            "fullName": user.full_name,
            "role": user.role,
        },
    }


@router.get("/me", response_model=UserResponse)
async def get_current_user_info(
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Profile of the authenticated user"""
    user = await db.get(User, current_user.id)
    if user is None:
        raise NotFoundException("user_not_found")
    return user.to_public_dict()
