from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

Country = Literal["ES", "DE", "FR", "IT", "UK"]


class CreateProductRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")
    title: str = Field(min_length=1, max_length=300)
    asin: str | None = None
    amazon_url: str | None = None
    main_image_url: str | None = None
    price: float | None = Field(default=None, ge=0)
    commission: float = Field(default=0, ge=0)
    total_qty: int = Field(default=1, ge=0)
    daily_limit: int | None = Field(default=None, gt=0)
    start_date: datetime | None = None
    end_date: datetime | None = None
    is_active: bool = True
    marketplace_country: Country | None = None


class PatchProductRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")
    title: str | None = Field(default=None, min_length=1, max_length=300)
    asin: str | None = None
    amazon_url: str | None = None
    main_image_url: str | None = None
    price: float | None = Field(default=None, ge=0)
    commission: float | None = Field(default=None, ge=0)
    total_qty: int | None = Field(default=None, ge=0)
    daily_limit: int | None = Field(default=None, gt=0)
    start_date: datetime | None = None
    end_date: datetime | None = None
    is_active: bool | None = None
    marketplace_country: Country | None = None


class BlockAgentRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")
    agent_id: int = Field(gt=0)


class CommissionOverrideRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")
    commission: float = Field(ge=0)
