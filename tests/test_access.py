from datetime import timedelta

import pytest

from ordertrack.application.access import (
    OWNER_ONLY, Action, Actor, authorize, is_allowed, resolve_actor,
)
from ordertrack.application.errors import ForbiddenError, UnauthorizedError
from ordertrack.application.security import create_access_token, decode_access_token, issued_at
from ordertrack.domain.models import utcnow
from ordertrack.domain.workflow import Role


@pytest.mark.parametrize("action", sorted(OWNER_ONLY, key=lambda a: a.value))
def test_owner_only_actions(action):
    assert is_allowed(Role.OWNER, action)
    assert not is_allowed(Role.EMPLOYEE, action)


@pytest.mark.parametrize("action", [
    Action.ORDER_CREATE,
    Action.ORDER_UPDATE,
    Action.ORDER_CHANGE_STATUS,
    Action.ORDER_ASSIGN_VENDOR,
    Action.ORDER_MARK_DELIVERED,
    Action.ORDER_CANCEL,
    Action.CUSTOMER_CREATE,
    Action.VENDOR_CREATE,
])
def test_employee_day_to_day_actions(action):
    assert is_allowed(Role.EMPLOYEE, action)


def test_authorize_requires_actor():
    with pytest.raises(UnauthorizedError):
        authorize(None, Action.ORDER_CREATE)
    with pytest.raises(UnauthorizedError):
        authorize(Actor(user_id="", role=Role.OWNER), Action.ORDER_CREATE)


def test_authorize_forbids_employee_delete():
    with pytest.raises(ForbiddenError) as excinfo:
        authorize(Actor(user_id="U-1", role=Role.EMPLOYEE), Action.ORDER_SOFT_DELETE)
    assert excinfo.value.status_code == 403


def test_resolve_actor_reads_role_from_storage(db, seed):
    actor = resolve_actor(db, "U-emp00001")
    assert actor.role == Role.EMPLOYEE
    assert actor.name == "Ravi"


def test_resolve_actor_rejects_inactive_and_unknown(db, seed):
    seed["employee"].active = False
    db.commit()
    with pytest.raises(UnauthorizedError):
        resolve_actor(db, "U-emp00001")
    with pytest.raises(UnauthorizedError):
        resolve_actor(db, "U-nobody00")


def test_resolve_actor_honours_revocation(db, seed):
    revoked_at = utcnow()
    seed["owner"].token_revoked_before = revoked_at
    db.commit()
    with pytest.raises(UnauthorizedError):
        resolve_actor(db, "U-owner001", issued_at=revoked_at - timedelta(seconds=1))
    assert resolve_actor(db, "U-owner001", issued_at=revoked_at + timedelta(seconds=1)).role == Role.OWNER


def test_token_issued_right_after_revocation_is_accepted(db, seed):
    seed["owner"].token_revoked_before = utcnow()
    db.commit()
    claims = decode_access_token(create_access_token("U-owner001", "OWNER"))
    assert isinstance(claims["iat"], float)
    assert resolve_actor(db, claims["sub"], issued_at(claims)).user_id == "U-owner001"
