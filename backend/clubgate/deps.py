from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from .db import session_scope
from .policy import Deny, DenyReason
from .roles import Principal, authenticate
from .state_machine import InvalidTransition

_DENY_STATUS = {
    DenyReason.NOT_STUDENT_LEADER: 403,
    DenyReason.NOT_OWNER: 403,
    DenyReason.NOT_ADMIN: 403,
    DenyReason.ALREADY_EXISTS: 409,
    DenyReason.INVALID_STATE: 409,
}


def get_db():
    with session_scope() as session:
        yield session


def get_principal(
    x_user_id: int | None = Header(default=None),
    db: Session = Depends(get_db),
) -> Principal:
    return authenticate(db, x_user_id)


def unwrap(outcome):
    """Return a successful service outcome or raise the matching HTTP error."""

    if isinstance(outcome, Deny):
        raise HTTPException(
            status_code=_DENY_STATUS[outcome.reason],
            detail={"code": outcome.reason.value, "message": outcome.detail},
        )
    if isinstance(outcome, InvalidTransition):
        raise HTTPException(
            status_code=409,
            detail={"code": "INVALID_TRANSITION", "message": outcome.message},
        )
    return outcome
