from typing import Literal

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class RegisterUserRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")
    name: str = Field(min_length=1, max_length=120)
    email: EmailStr
    telegram_username: str | None = Field(default=None, max_length=100)
    paypal: str | None = Field(default=None, max_length=200)


class UpdateUserStatusRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")
    status: Literal["pending", "approved", "blocked"]


class UpdateUserRolesRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")
    roles: list[Literal["admin", "seller", "agent"]] = Field(min_length=1)


class UpdateUserCountriesRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")
    countries: list[Literal["ES", "DE", "FR", "IT", "UK"]]
