"""Authorization decisions for clubs, memberships, events and flags.

``authorize`` is a pure function of the principal, the action and the entity
snapshots handed to it. It never reads storage. Callers fetch the snapshots
and pass them in:

* ``entity`` is the row being acted on (a club, membership, event or flag).
* ``parent`` is the row that owns it: the club of a membership, the club or
  event a flag points at.
* ``existing`` is the principal's own row that would collide with a create
  (their membership for a join, their flag for a report) or, for event
  creation, their membership in the club.

Authority over a membership is always taken from ``parent.creator_id``. The
membership rules are only ever handed the parent club and the row under
decision, so a membership check can never depend on other membership rows.
"""

from dataclasses import dataclass
from enum import Enum

from .roles import Principal
from .state_machine import ApprovalStatus, ClubRole, FlagStatus, MembershipStatus


class Action(str, Enum):
    CREATE_CLUB = "create_club"
    VIEW_CLUB = "view_club"
    APPROVE_CLUB = "approve_club"
    REJECT_CLUB = "reject_club"
    DELETE_CLUB = "delete_club"
    JOIN_CLUB = "join_club"
    LEAVE_CLUB = "leave_club"
    APPROVE_MEMBERSHIP = "approve_membership"
    REJECT_MEMBERSHIP = "reject_membership"
    CHANGE_MEMBER_ROLE = "change_member_role"
    REMOVE_MEMBER = "remove_member"
    CREATE_EVENT = "create_event"
    DELETE_EVENT = "delete_event"
    FILE_FLAG = "file_flag"
    VIEW_FLAGS = "view_flags"
    REVIEW_FLAG = "review_flag"
    RESOLVE_FLAG = "resolve_flag"
    DISMISS_FLAG = "dismiss_flag"
    WITHDRAW_FLAG = "withdraw_flag"
    VIEW_LOGS = "view_logs"
    VIEW_MEMBERSHIP_REQUESTS = "view_membership_requests"
    MANAGE_CLUB = "manage_club"
    VIEW_ALL_FLAGS = "view_all_flags"
    VIEW_REJECTED_CLUBS = "view_rejected_clubs"
    VIEW_STATS = "view_stats"


class DenyReason(str, Enum):
    NOT_STUDENT_LEADER = "NOT_STUDENT_LEADER"
    NOT_OWNER = "NOT_OWNER"
    NOT_ADMIN = "NOT_ADMIN"
    ALREADY_EXISTS = "ALREADY_EXISTS"
    INVALID_STATE = "INVALID_STATE"


@dataclass(frozen=True)
class Allow:
    initial_state: str | None = None

    def __bool__(self) -> bool:
        return True


@dataclass(frozen=True)
class Deny:
    reason: DenyReason
    detail: str = ""

    def __bool__(self) -> bool:
        return False


Decision = Allow | Deny

ALLOW = Allow()


def _owns(principal: Principal, entity) -> bool:
    return entity is not None and entity.creator_id == principal.id


def _require(value, name: str, action: Action):
    if value is None:
        raise ValueError(f"{action.value} needs a {name} snapshot")
    return value


def _check_parent(child_id: int, parent, action: Action) -> None:
    if child_id != parent.id:
        raise ValueError(f"{action.value}: parent {parent.id} does not own row pointing at {child_id}")


def _create_club(principal, entity, parent, existing):
    if principal.is_admin:
        return Allow(initial_state=ApprovalStatus.APPROVED.value)
    if principal.is_leader:
        return Allow(initial_state=ApprovalStatus.PENDING.value)
    return Deny(DenyReason.NOT_STUDENT_LEADER, "only student leaders can create clubs")


def _view_club(principal, club, parent, existing):
    if principal.is_admin or _owns(principal, club):
        return ALLOW
    if club.approval_status == ApprovalStatus.APPROVED.value:
        return ALLOW
    return Deny(DenyReason.NOT_OWNER, "club is not approved")


def _moderate_club(principal, club, parent, existing):
    if principal.is_admin:
        return ALLOW
    return Deny(DenyReason.NOT_OWNER, "only platform admins moderate clubs")


def _delete_club(principal, club, parent, existing):
    if principal.is_admin or _owns(principal, club):
        return ALLOW
    return Deny(DenyReason.NOT_OWNER, "only the club creator can delete it")


def _join_club(principal, club, parent, membership):
    if membership is not None and membership.status != MembershipStatus.REJECTED.value:
        return Deny(DenyReason.ALREADY_EXISTS, f"membership is already {membership.status}")
    if club.approval_status != ApprovalStatus.APPROVED.value:
        return Deny(DenyReason.INVALID_STATE, "club is not open for membership")
    return Allow(initial_state=MembershipStatus.PENDING.value)


def _manage_membership(principal, membership, club, existing, *, protects_creator):
    # Authority comes from the parent club only, never from membership rows.
    if not (principal.is_admin or _owns(principal, club)):
        return Deny(DenyReason.NOT_OWNER, "only the club creator manages members")
    if protects_creator and membership.user_id == club.creator_id:
        return Deny(DenyReason.INVALID_STATE, "the club creator's membership is fixed")
    return ALLOW


def _decide_membership(principal, membership, club, existing):
    return _manage_membership(principal, membership, club, existing, protects_creator=False)


def _edit_membership(principal, membership, club, existing):
    return _manage_membership(principal, membership, club, existing, protects_creator=True)


def _leave_club(principal, membership, club, existing):
    if membership.user_id != principal.id:
        return Deny(DenyReason.NOT_OWNER, "members can only leave for themselves")
    if _owns(principal, club):
        return Deny(DenyReason.INVALID_STATE, "the club creator cannot leave their own club")
    return ALLOW


def _view_membership_requests(principal, club, parent, existing):
    if principal.is_admin or _owns(principal, club):
        return ALLOW
    return Deny(DenyReason.NOT_OWNER, "only the club creator can see membership requests")


def _club_admin(principal, club, membership) -> bool:
    if _owns(principal, club):
        return True
    return (
        membership is not None
        and membership.user_id == principal.id
        and membership.club_id == club.id
        and membership.role == ClubRole.ADMIN.value
        and membership.status == MembershipStatus.APPROVED.value
    )


def _manage_club(principal, club, parent, membership):
    if principal.is_admin or _club_admin(principal, club, membership):
        return ALLOW
    return Deny(DenyReason.NOT_OWNER, "not an admin of this club")


def _create_event(principal, club, parent, membership):
    if _club_admin(principal, club, membership):
        return ALLOW
    return Deny(DenyReason.NOT_OWNER, "only club admins can create events")


def _delete_event(principal, event, parent, existing):
    if _owns(principal, event):
        return ALLOW
    return Deny(DenyReason.NOT_OWNER, "only the event creator can delete it")


def _file_flag(principal, target, parent, flag):
    if flag is not None:
        return Deny(DenyReason.ALREADY_EXISTS, "you have already flagged this")
    return Allow(initial_state=FlagStatus.PENDING.value)


def _view_flags(principal, target, parent, existing):
    if principal.is_admin or _owns(principal, target):
        return ALLOW
    return Deny(DenyReason.NOT_OWNER, "only the owner can see flags")


def _moderate_flag(principal, flag, target, existing):
    if principal.is_admin or _owns(principal, target):
        return ALLOW
    return Deny(DenyReason.NOT_OWNER, "only the flagged content's owner can review flags")


def _withdraw_flag(principal, flag, parent, existing):
    if flag.reporter_id != principal.id:
        return Deny(DenyReason.NOT_OWNER, "only the reporter can withdraw a flag")
    if flag.status != FlagStatus.PENDING.value:
        return Deny(DenyReason.INVALID_STATE, f"flag is already {flag.status}")
    return ALLOW


def _platform_admin_only(principal, entity, parent, existing):
    if principal.is_admin:
        return ALLOW
    return Deny(DenyReason.NOT_ADMIN, "only platform admins can see this")


# action -> (rule, needs entity, needs parent)
_RULES = {
    Action.CREATE_CLUB: (_create_club, False, False),
    Action.VIEW_CLUB: (_view_club, True, False),
    Action.APPROVE_CLUB: (_moderate_club, True, False),
    Action.REJECT_CLUB: (_moderate_club, True, False),
    Action.DELETE_CLUB: (_delete_club, True, False),
    Action.JOIN_CLUB: (_join_club, True, False),
    Action.LEAVE_CLUB: (_leave_club, True, True),
    Action.APPROVE_MEMBERSHIP: (_decide_membership, True, True),
    Action.REJECT_MEMBERSHIP: (_decide_membership, True, True),
    Action.CHANGE_MEMBER_ROLE: (_edit_membership, True, True),
    Action.REMOVE_MEMBER: (_edit_membership, True, True),
    Action.CREATE_EVENT: (_create_event, True, False),
    Action.DELETE_EVENT: (_delete_event, True, False),
    Action.FILE_FLAG: (_file_flag, True, False),
    Action.VIEW_FLAGS: (_view_flags, True, False),
    Action.REVIEW_FLAG: (_moderate_flag, True, True),
    Action.RESOLVE_FLAG: (_moderate_flag, True, True),
    Action.DISMISS_FLAG: (_moderate_flag, True, True),
    Action.WITHDRAW_FLAG: (_withdraw_flag, True, False),
    Action.VIEW_LOGS: (_platform_admin_only, False, False),
    Action.VIEW_MEMBERSHIP_REQUESTS: (_view_membership_requests, True, False),
    Action.MANAGE_CLUB: (_manage_club, True, False),
    Action.VIEW_ALL_FLAGS: (_platform_admin_only, False, False),
    Action.VIEW_REJECTED_CLUBS: (_platform_admin_only, False, False),
    Action.VIEW_STATS: (_platform_admin_only, False, False),
}

_PARENT_KEY = {
    Action.LEAVE_CLUB: "club_id",
    Action.APPROVE_MEMBERSHIP: "club_id",
    Action.REJECT_MEMBERSHIP: "club_id",
    Action.CHANGE_MEMBER_ROLE: "club_id",
    Action.REMOVE_MEMBER: "club_id",
    Action.REVIEW_FLAG: "target_id",
    Action.RESOLVE_FLAG: "target_id",
    Action.DISMISS_FLAG: "target_id",
}


def authorize(principal: Principal, action, entity=None, *, parent=None, existing=None) -> Decision:
    """Decide whether ``principal`` may perform ``action``.

    Returns :class:`Allow` (optionally carrying the state a created entity
    starts in) or :class:`Deny` with a stable reason code. A deny is an
    ordinary outcome and is never raised.
    """

    action = Action(action)
    rule, needs_entity, needs_parent = _RULES[action]
    if needs_entity:
        _require(entity, "target", action)
    if needs_parent:
        _require(parent, "parent", action)
        _check_parent(getattr(entity, _PARENT_KEY[action]), parent, action)
    return rule(principal, entity, parent, existing)
