"""
Role-based access control for order and master-data operations.

The guard is consulted before any storage work, so a denied call never
leaves a ledger entry or a projection change behind.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Dict, FrozenSet, Optional

from sqlalchemy.orm import Session

from ordertrack.domain.models import User
from ordertrack.domain.workflow import Role
from .errors import ForbiddenError, UnauthorizedError


class Action(str, Enum):
    ORDER_CREATE = "order:create"
    ORDER_UPDATE = "order:update"
    ORDER_CHANGE_STATUS = "order:change_status"
    ORDER_ASSIGN_VENDOR = "order:assign_vendor"
    ORDER_MARK_DELIVERED = "order:mark_delivered"
    ORDER_CANCEL = "order:cancel"
    ORDER_SOFT_DELETE = "order:soft_delete"
    ORDER_RESTORE = "order:restore"
    CUSTOMER_CREATE = "customer:create"
    CUSTOMER_UPDATE = "customer:update"
    CUSTOMER_DELETE = "customer:delete"
    VENDOR_CREATE = "vendor:create"
    VENDOR_UPDATE = "vendor:update"
    VENDOR_DEACTIVATE = "vendor:deactivate"
    VENDOR_REACTIVATE = "vendor:reactivate"
    PRODUCT_TYPE_CREATE = "product_type:create"
    PRODUCT_TYPE_UPDATE = "product_type:update"
    PRODUCT_TYPE_DEACTIVATE = "product_type:deactivate"
    PRODUCT_TYPE_REACTIVATE = "product_type:reactivate"
    USER_MANAGE = "user:manage"


OWNER_ONLY: FrozenSet[Action] = frozenset({
    Action.ORDER_SOFT_DELETE,
    Action.ORDER_RESTORE,
    Action.CUSTOMER_DELETE,
    Action.VENDOR_DEACTIVATE,
    Action.VENDOR_REACTIVATE,
    Action.PRODUCT_TYPE_DEACTIVATE,
    Action.PRODUCT_TYPE_REACTIVATE,
    Action.USER_MANAGE,
})

PERMISSIONS: Dict[Role, FrozenSet[Action]] = {
    Role.OWNER: frozenset(Action),
    Role.EMPLOYEE: frozenset(Action) - OWNER_ONLY,
}


@dataclass(frozen=True)
class Actor:
    """An already-authenticated caller."""
    user_id: str
    role: Role
    name: Optional[str] = None


def is_allowed(role: Role, action: Action) -> bool:
    return Action(action) in PERMISSIONS.get(Role(role), frozenset())


def authorize(actor: Optional[Actor], action: Action) -> Actor:
    if actor is None or not actor.user_id:
        raise UnauthorizedError("An authenticated actor is required")
    if not is_allowed(actor.role, action):
        raise ForbiddenError(f"Role {Role(actor.role).value} may not perform {Action(action).value}")
    return actor


def resolve_actor(db: Session, user_id: str, issued_at: Optional[datetime] = None) -> Actor:
    """Look up the role for an authenticated user id.

    ``issued_at`` is the credential issue time; credentials older than the
    user's revocation watermark are rejected.
    """
    user = db.get(User, user_id) if user_id else None
    if user is None or user.is_deleted or not user.active:
        raise UnauthorizedError("Unknown or inactive user")
    if (
        issued_at is not None
        and user.token_revoked_before is not None
        and issued_at < user.token_revoked_before
    ):
        raise UnauthorizedError("Session has been revoked")
    return Actor(user_id=user.id, role=Role(user.role), name=user.name)
