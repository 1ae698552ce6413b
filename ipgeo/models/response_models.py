from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict


class HealthResponse(BaseModel):
    """Response model for the health check endpoint."""

    status: str


class ErrorResponse(BaseModel):
    """Envelope returned by every failing endpoint."""

    success: bool = False
    message: str
    errors: dict[str, list[str]] | None = None


class MessageResponse(BaseModel):
    success: bool = True
    message: str


class GeolocationResponse(BaseModel):
    """Provider payload passed through untouched (ip, city, region, country, loc, timezone, ...)."""

    success: bool = True
    data: dict[str, Any]


class HistoryRecordOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    ip_address: str
    geo_data: dict[str, Any]
    created_at: datetime
    updated_at: datetime


class HistoryListResponse(BaseModel):
    success: bool = True
    data: list[HistoryRecordOut]


class HistoryDeleteResponse(BaseModel):
    success: bool = True
    message: str = "History deleted successfully"
    deleted_count: int


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: str
    created_at: datetime
    updated_at: datetime


class UserResponse(BaseModel):
    success: bool = True
    data: UserOut


class LoginData(BaseModel):
    user: UserOut
    token: str
    token_type: str = "Bearer"


class LoginResponse(BaseModel):
    success: bool = True
    message: str = "Login successful"
    data: LoginData
