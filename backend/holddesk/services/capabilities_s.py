from __future__ import annotations

from sqlalchemy.orm import Session, joinedload

from holddesk.db.models import User
from holddesk.services.workflow_errors import ForbiddenError, NotFoundError

ROLE_ADMIN = "admin"
ROLE_SELLER = "seller"
ROLE_AGENT = "agent"
ALLOWED_ROLES = {ROLE_ADMIN, ROLE_SELLER, ROLE_AGENT}

USER_PENDING = "pending"
USER_APPROVED = "approved"
USER_BLOCKED = "blocked"
ALLOWED_USER_STATUS = {USER_PENDING, USER_APPROVED, USER_BLOCKED}

CAN_CREATE_HOLD = "can_create_hold"
CAN_CONVERT_HOLD = "can_convert_hold"
CAN_UPLOAD_REVIEW = "can_upload_review"
CAN_MANAGE_PRODUCTS = "can_manage_products"
CAN_BLOCK_AGENTS = "can_block_agents"
CAN_ADVANCE_DEAL = "can_advance_deal"
CAN_MANAGE_USERS = "can_manage_users"
CAN_SET_COMMISSION_OVERRIDE = "can_set_commission_override"
CAN_EXPIRE_HOLDS = "can_expire_holds"
CAN_VIEW_METRICS = "can_view_metrics"

_AGENT_CAPABILITIES = frozenset({CAN_CREATE_HOLD, CAN_CONVERT_HOLD, CAN_UPLOAD_REVIEW})
_SELLER_CAPABILITIES = frozenset({CAN_MANAGE_PRODUCTS, CAN_BLOCK_AGENTS})

# Admin implies seller and agent.
ROLE_CAPABILITIES: dict[str, frozenset[str]] = {
    ROLE_AGENT: _AGENT_CAPABILITIES,
    ROLE_SELLER: _SELLER_CAPABILITIES,
    ROLE_ADMIN: _AGENT_CAPABILITIES
    | _SELLER_CAPABILITIES
    | frozenset(
        {
            CAN_ADVANCE_DEAL,
            CAN_MANAGE_USERS,
            CAN_SET_COMMISSION_OVERRIDE,
            CAN_EXPIRE_HOLDS,
            CAN_VIEW_METRICS,
        }
    ),
}


def _load_user(user_id: int, db: Session) -> User | None:
    return (
        db.query(User)
        .options(joinedload(User.roles))
        .filter(User.id == user_id)
        .first()
    )


def capabilities_for_user(user: User) -> frozenset[str]:
    if user.status != USER_APPROVED:
        return frozenset()
    granted: set[str] = set()
    for user_role in user.roles:
        granted |= ROLE_CAPABILITIES.get(user_role.role, frozenset())
    return frozenset(granted)


def role_names(user: User) -> list[str]:
    return sorted(user_role.role for user_role in user.roles)


def is_admin(user: User) -> bool:
    return ROLE_ADMIN in role_names(user)


def get_capabilities(user_id: int, db: Session) -> frozenset[str]:
    user = _load_user(user_id, db)
    if user is None:
        return frozenset()
    return capabilities_for_user(user)


def require_capability(user_id: int, capability: str, db: Session) -> User:
    user = _load_user(user_id, db)
    if user is None:
        raise NotFoundError("user not found")
    if user.status == USER_PENDING:
        raise ForbiddenError("user is pending approval")
    if user.status == USER_BLOCKED:
        raise ForbiddenError("user is blocked")
    if capability not in capabilities_for_user(user):
        raise ForbiddenError(f"missing capability: {capability}")
    return user


def has_capability(user_id: int, capability: str, db: Session) -> bool:
    return capability in get_capabilities(user_id, db)
