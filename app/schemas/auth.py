"""
Authentication Pydantic schemas for request/response validation
"""
import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, Field


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8)
    fullName: Optional[str] = Field(None, min_length=1)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class EmailExistsResponse(BaseModel):
    exists: bool


class UserResponse(BaseModel):
    id: str
    email: str
    fullName: Optional[str] = None
    role: str
    createdAt: Optional[datetime.datetime] = None


class LoginUser(BaseModel):
    id: str
    email: str
    fullName: Optional[str] = None
    role: str


class LoginResponse(BaseModel):
    token: str
    user: LoginUser
