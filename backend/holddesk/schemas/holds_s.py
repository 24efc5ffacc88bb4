from pydantic import BaseModel, ConfigDict, Field


class CreateHoldRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")
    product_id: int = Field(gt=0)


class ConvertHoldRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")
    order_screenshot_path: str = Field(min_length=1, max_length=500)
    customer_name: str = Field(min_length=1, max_length=120)
    amazon_profile_url: str = Field(min_length=1, max_length=500)
    customer_paypal: str | None = Field(default=None, max_length=200)
    customer_telegram: str | None = Field(default=None, max_length=100)
