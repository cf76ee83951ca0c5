from typing import Any

from pydantic import BaseModel, Field


class LoginRequest(BaseModel):
    email: str = Field(min_length=3, max_length=254)
    phone_number: str = Field(min_length=1, max_length=32)


class CheckEmailRequest(BaseModel):
    email: str = Field(min_length=1, max_length=254)


class CheckEmailResponse(BaseModel):
    exists: bool


class GlobalStatsResponse(BaseModel):
    total_points: int
    current_streak: int
    longest_streak: int


class UserResponse(BaseModel):
    email: str
    name: str
    phone_number: str
    schema_version: int
    created_at: str
    settings: dict[str, Any] | None = None


class LoginResponse(BaseModel):
    user: UserResponse
    plans: list[dict[str, Any]]
    active_plan: dict[str, Any] | None = None
    user_state: dict[str, Any] | None = None
    global_stats: GlobalStatsResponse
