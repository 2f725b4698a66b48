"""Pydantic schemas for API request/response serialization.

No response schema carries a password hash or a stored token digest.
"""

from pydantic import BaseModel, EmailStr, Field
from typing import Optional, List, Dict, Any
from datetime import datetime


# ---- Auth ----
class LoginRequest(BaseModel):
    username: str = Field(..., min_length=1, description="Username or email")
    password: str = Field(..., min_length=1, max_length=255)

class RegisterRequest(BaseModel):
    username: str = Field(..., min_length=3, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=255)
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)

class RefreshRequest(BaseModel):
    refresh_token: str = Field(..., min_length=1)

class LogoutRequest(BaseModel):
    refresh_token: Optional[str] = None


# ---- Permission / Role ----
class PermissionOut(BaseModel):
    id: str
    name: str
    resource: str
    action: str
    description: Optional[str] = None

    class Config:
        from_attributes = True

class PermissionCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    resource: str = Field(..., min_length=1, max_length=50)
    action: str = Field(..., min_length=1, max_length=50)
    description: Optional[str] = Field(None, max_length=255)

class PermissionUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    resource: Optional[str] = Field(None, min_length=1, max_length=50)
    action: Optional[str] = Field(None, min_length=1, max_length=50)
    description: Optional[str] = Field(None, max_length=255)

class RoleOut(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    permissions: List[PermissionOut] = []

    class Config:
        from_attributes = True

class RoleCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=50)
    description: Optional[str] = Field(None, max_length=255)
    permission_ids: List[str] = []

class RoleUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=50)
    description: Optional[str] = Field(None, max_length=255)
    permission_ids: Optional[List[str]] = None


# ---- User ----
class UserOut(BaseModel):
    id: str
    username: str
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    is_active: bool = True
    roles: List[RoleOut] = []
    last_login_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class MeResponse(BaseModel):
    user: UserOut
    permissions: List[str]

class UserCreate(BaseModel):
    username: str = Field(..., min_length=3, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=255)
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)
    role_ids: List[str] = []

class UserUpdate(BaseModel):
    username: Optional[str] = Field(None, min_length=3, max_length=100)
    email: Optional[EmailStr] = None
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)
    is_active: Optional[bool] = None
    role_ids: Optional[List[str]] = None

class AssignRolesRequest(BaseModel):
    role_ids: List[str] = Field(..., min_length=1)

class UserListResponse(BaseModel):
    users: List[UserOut]
    pagination: Dict[str, int]


# ---- Tokens ----
class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_at: int

class AuthResponse(TokenResponse):
    user: UserOut


# ---- Menu ----
class MenuItem(BaseModel):
    name: str
    label: str
    icon: str
    path: str
    permission: str
    children: Optional[List["MenuItem"]] = None

class MenuResponse(BaseModel):
    menus: List[MenuItem]
    features: Dict[str, bool]


# ---- Security / Admin ----
class RequestLogOut(BaseModel):
    id: str
    user_id: Optional[str] = None
    ip: str
    method: str
    path: str
    user_agent: Optional[str] = None
    status: Optional[int] = None
    duration_ms: Optional[int] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class FailedLoginOut(BaseModel):
    id: str
    ip: str
    username: Optional[str] = None
    user_agent: Optional[str] = None
    attempts: int
    last_try: datetime
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# ---- Common ----
class MessageResponse(BaseModel):
    message: str
    detail: Optional[Any] = None
