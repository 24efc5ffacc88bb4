from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class AdvanceDealStatusRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")
    status: Literal["approved", "paid_to_client", "completed", "rejected"]
    admin_note: str | None = Field(default=None, max_length=2000)


class UploadReviewRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")
    review_link: str = Field(min_length=1, max_length=500)
    review_screenshot_path: str = Field(min_length=1, max_length=500)
