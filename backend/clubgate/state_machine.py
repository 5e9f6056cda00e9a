"""Lifecycle graphs for clubs, memberships, events and flags.

Every state change in the engine is computed here from the entity's *current*
state and the requested action. The graphs are deliberately closed: anything
not listed is an :class:`InvalidTransition`, including re-applying a
transition that already happened (approving an approved club, dismissing a
dismissed flag). Callers re-fetch and re-decide instead of retrying.
"""

from dataclasses import dataclass
from enum import Enum


class EntityType(str, Enum):
    CLUB = "club"
    MEMBERSHIP = "membership"
    EVENT = "event"
    FLAG = "flag"


class ApprovalStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class MembershipStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ClubRole(str, Enum):
    ADMIN = "admin"
    MEMBER = "member"


class FlagStatus(str, Enum):
    PENDING = "pending"
    REVIEWED = "reviewed"
    RESOLVED = "resolved"
    DISMISSED = "dismissed"


class Transition(str, Enum):
    CREATE = "create"
    APPROVE = "approve"
    REJECT = "reject"
    JOIN = "join"
    LEAVE = "leave"
    REMOVE = "remove"
    CHANGE_ROLE = "change_role"
    DELETE = "delete"
    FILE = "file"
    REVIEW = "review"
    RESOLVE = "resolve"
    DISMISS = "dismiss"
    WITHDRAW = "withdraw"


# Sentinel states: an entity that does not exist yet, and one that was removed.
ABSENT = None
DELETED = "deleted"
EXISTS = "exists"

@dataclass(frozen=True)
class InvalidTransition:
    entity_type: str
    current: str | None
    action: str
    detail: str = ""

    def __bool__(self) -> bool:
        return False

    @property
    def message(self) -> str:
        text = f"cannot {self.action} {self.entity_type} in state {self.current or 'absent'}"
        return f"{text}: {self.detail}" if self.detail else text


def _graph(*edges):
    table = {}
    for sources, action, target in edges:
        for source in sources:
            table[(source, action.value)] = target
    return table


_P, _A, _R = "pending", "approved", "rejected"

GRAPHS = {
    EntityType.CLUB: _graph(
        ((ABSENT,), Transition.CREATE, _P),
        ((_P, _R), Transition.APPROVE, _A),
        ((_P,), Transition.REJECT, _R),
        ((_P, _A, _R), Transition.DELETE, DELETED),
    ),
    EntityType.MEMBERSHIP: _graph(
        ((ABSENT, _R), Transition.JOIN, _P),
        ((_P,), Transition.APPROVE, _A),
        ((_P,), Transition.REJECT, _R),
        ((_A,), Transition.LEAVE, DELETED),
        ((_A,), Transition.REMOVE, DELETED),
        ((_A,), Transition.CHANGE_ROLE, _A),
    ),
    EntityType.EVENT: _graph(
        ((ABSENT,), Transition.CREATE, EXISTS),
        ((EXISTS,), Transition.DELETE, DELETED),
    ),
    EntityType.FLAG: _graph(
        ((ABSENT,), Transition.FILE, "pending"),
        (("pending",), Transition.REVIEW, "reviewed"),
        (("pending", "reviewed"), Transition.RESOLVE, "resolved"),
        (("pending", "reviewed"), Transition.DISMISS, "dismissed"),
        (("pending",), Transition.WITHDRAW, DELETED),
    ),
}


def _value(item):
    return item.value if isinstance(item, Enum) else item


def transition(entity_type, current, action, *, reason: str | None = None):
    """Return the state ``action`` moves an entity to, or :class:`InvalidTransition`.

    ``current`` is ``None`` for an entity that does not exist yet. Rejecting a
    club additionally needs a non-blank ``reason``.
    """

    entity_type = EntityType(_value(entity_type))
    current = _value(current)
    action = _value(action)

    target = GRAPHS[entity_type].get((current, action))
    if target is None:
        return InvalidTransition(entity_type.value, current, action)
    if (
        entity_type is EntityType.CLUB
        and action == Transition.REJECT.value
        and not (reason or "").strip()
    ):
        return InvalidTransition(entity_type.value, current, action, "rejection reason required")
    return target


def is_terminal(entity_type, state) -> bool:
    entity_type = EntityType(_value(entity_type))
    state = _value(state)
    return not any(source == state for source, _ in GRAPHS[entity_type])
