from holddesk.schemas.deals_s import AdvanceDealStatusRequest, UploadReviewRequest
from holddesk.schemas.holds_s import ConvertHoldRequest, CreateHoldRequest
from holddesk.schemas.products_s import (
    BlockAgentRequest,
    CommissionOverrideRequest,
    CreateProductRequest,
    PatchProductRequest,
)
from holddesk.schemas.users_s import (
    RegisterUserRequest,
    UpdateUserCountriesRequest,
    UpdateUserRolesRequest,
    UpdateUserStatusRequest,
)

__all__ = [
    "CreateHoldRequest",
    "ConvertHoldRequest",
    "AdvanceDealStatusRequest",
    "UploadReviewRequest",
    "CreateProductRequest",
    "PatchProductRequest",
    "BlockAgentRequest",
    "CommissionOverrideRequest",
    "RegisterUserRequest",
    "UpdateUserStatusRequest",
    "UpdateUserRolesRequest",
    "UpdateUserCountriesRequest",
]
