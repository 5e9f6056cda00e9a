"""Request flow for every club, membership, event and flag operation.

Each operation fetches the snapshots it needs, asks :func:`authorize`, asks the
state machine for the next state and applies it through the repository.
Operations return the affected row on success. On refusal they return a falsy
:class:`Deny` or :class:`InvalidTransition` value and change nothing.
Missing rows raise :class:`NotFoundError`.
"""

import logging
from datetime import datetime
from decimal import Decimal

from sqlalchemy.orm import Session

from . import metrics
from .errors import DuplicateEntityError, StorageConflict
from .models import Club, ClubMembership, Event
from .moderation_log import LogAction, ModerationLog
from .policy import Action, Deny, DenyReason, authorize
from .repository import Repository, flag_model
from .roles import Principal
from .state_machine import (
    EXISTS,
    ApprovalStatus,
    ClubRole,
    EntityType,
    FlagStatus,
    InvalidTransition,
    MembershipStatus,
    Transition,
    transition,
)

logger = logging.getLogger(__name__)

EVENT_CATEGORIES = ("academic", "social", "sports", "arts", "career", "cultural", "other")
FLAG_REASONS = ("Inappropriate Content", "Spam", "Misinformation", "Other")
FLAG_KINDS = ("club", "event")
MAX_PAGE_SIZE = 100
RECENT_ACTIVITY_SIZE = 10

_FLAG_MOVES = {
    FlagStatus.REVIEWED.value: (Transition.REVIEW, Action.REVIEW_FLAG, LogAction.FLAG_REVIEWED),
    FlagStatus.RESOLVED.value: (Transition.RESOLVE, Action.RESOLVE_FLAG, LogAction.FLAG_RESOLVED),
    FlagStatus.DISMISSED.value: (Transition.DISMISS, Action.DISMISS_FLAG, LogAction.FLAG_DISMISSED),
}


def _retry_once(repo: Repository, step):
    """Run ``step``; if its compare-and-swap lost a race, re-fetch and decide once more."""

    try:
        return step()
    except StorageConflict as exc:
        metrics.state_conflict(exc.entity_type)
        logger.info("%s, deciding again", exc)
        repo.reset()
        return step()


def check_event_pricing(is_free: bool, price) -> None:
    if is_free and price is not None:
        raise ValueError("free events cannot have a price")
    if not is_free and (price is None or Decimal(price) <= 0):
        raise ValueError("paid events need a positive price")


# clubs


def create_club(db: Session, principal: Principal, name: str, description: str = ""):
    decision = authorize(principal, Action.CREATE_CLUB)
    if not decision:
        return decision

    state = transition(EntityType.CLUB, None, Transition.CREATE)
    if decision.initial_state == ApprovalStatus.APPROVED.value:
        # Admin-created clubs skip the review queue.
        state = transition(EntityType.CLUB, state, Transition.APPROVE)
    if isinstance(state, InvalidTransition):
        return state

    club = Club(name=name, description=description, creator_id=principal.id, approval_status=state)
    if state == ApprovalStatus.APPROVED.value:
        club.approved_by = principal.id
        club.approved_at = datetime.utcnow()
    try:
        Repository(db).insert_club(club)
    except DuplicateEntityError:
        return Deny(DenyReason.ALREADY_EXISTS, f"a club named {name!r} already exists")
    logger.info("club %s created by %s as %s", club.id, principal.id, club.approval_status)
    return club


def get_club(db: Session, principal: Principal, club_id: int):
    repo = Repository(db)
    club = repo.require(repo.get_club(club_id), "club", club_id)
    decision = authorize(principal, Action.VIEW_CLUB, club)
    return club if decision else decision


def visible_clubs(db: Session, principal: Principal) -> list[Club]:
    return [club for club in Repository(db).clubs() if authorize(principal, Action.VIEW_CLUB, club)]


def clubs_awaiting_review(db: Session, principal: Principal) -> list[Club]:
    pending = Repository(db).clubs(ApprovalStatus.PENDING.value)
    return [club for club in pending if authorize(principal, Action.APPROVE_CLUB, club)]


def rejected_clubs(db: Session, principal: Principal, limit: int = 50, offset: int = 0):
    decision = authorize(principal, Action.VIEW_REJECTED_CLUBS)
    if not decision:
        return decision
    return Repository(db).reviewed_clubs(ApprovalStatus.REJECTED.value, min(limit, MAX_PAGE_SIZE), offset)


def managed_clubs(db: Session, principal: Principal) -> list[Club]:
    """Clubs the principal can run: every club for a platform admin."""

    repo = Repository(db)
    if principal.is_admin:
        candidates = [(club, None) for club in repo.clubs()]
    else:
        candidates = repo.administered_clubs(principal.id)
    return [
        club
        for club, membership in candidates
        if authorize(principal, Action.MANAGE_CLUB, club, existing=membership)
    ]


def _moderate_club(db, principal, club_id, move, action, log_action, reason=None, audit=None):
    repo = Repository(db)
    audit = audit or ModerationLog(db)

    def step():
        club = repo.require(repo.get_club(club_id), "club", club_id)
        decision = authorize(principal, action, club)
        if not decision:
            return decision
        previous = club.approval_status
        new_state = transition(EntityType.CLUB, previous, move, reason=reason)
        if isinstance(new_state, InvalidTransition):
            return new_state
        repo.conditional_update(
            Club,
            club.id,
            "approval_status",
            previous,
            {
                "approval_status": new_state,
                "approved_by": principal.id,
                "approved_at": datetime.utcnow(),
                "rejection_reason": reason.strip() if reason else None,
            },
        )
        details = {"club_name": club.name, "previous_status": previous, "creator_id": club.creator_id}
        if reason:
            details["rejection_reason"] = reason.strip()
        audit.record(principal.id, log_action, EntityType.CLUB, club.id, details)
        return club

    return _retry_once(repo, step)


def approve_club(db: Session, principal: Principal, club_id: int, audit: ModerationLog | None = None):
    return _moderate_club(
        db, principal, club_id, Transition.APPROVE, Action.APPROVE_CLUB, LogAction.CLUB_APPROVED, audit=audit
    )


def reject_club(
    db: Session, principal: Principal, club_id: int, reason: str, audit: ModerationLog | None = None
):
    return _moderate_club(
        db,
        principal,
        club_id,
        Transition.REJECT,
        Action.REJECT_CLUB,
        LogAction.CLUB_REJECTED,
        reason=reason,
        audit=audit,
    )


def delete_club(db: Session, principal: Principal, club_id: int, audit: ModerationLog | None = None):
    repo = Repository(db)
    club = repo.require(repo.get_club(club_id), "club", club_id)
    decision = authorize(principal, Action.DELETE_CLUB, club)
    if not decision:
        return decision
    outcome = transition(EntityType.CLUB, club.approval_status, Transition.DELETE)
    if isinstance(outcome, InvalidTransition):
        return outcome

    creator_id = club.creator_id
    details = {"club_name": club.name, "creator_id": creator_id}
    repo.delete(club)
    if creator_id != principal.id:
        (audit or ModerationLog(db)).record(principal.id, LogAction.CLUB_DELETED, EntityType.CLUB, club_id, details)
    return club


# memberships


def request_membership(db: Session, principal: Principal, club_id: int):
    repo = Repository(db)

    def step():
        club = repo.require(repo.get_club(club_id), "club", club_id)
        # The requester's own row, read to detect a duplicate, not to grant anything.
        existing = repo.get_membership(club_id, principal.id)
        decision = authorize(principal, Action.JOIN_CLUB, club, existing=existing)
        if not decision:
            return decision
        current = existing.status if existing is not None else None
        new_state = transition(EntityType.MEMBERSHIP, current, Transition.JOIN)
        if isinstance(new_state, InvalidTransition):
            return new_state

        if existing is None:
            membership = ClubMembership(
                club_id=club_id,
                user_id=principal.id,
                role=ClubRole.MEMBER.value,
                status=new_state,
            )
            try:
                return repo.insert(membership)
            except DuplicateEntityError:
                return Deny(DenyReason.ALREADY_EXISTS, "membership already requested")

        repo.conditional_update(
            ClubMembership,
            existing.id,
            "status",
            current,
            {"status": new_state, "role": ClubRole.MEMBER.value},
        )
        return existing

    return _retry_once(repo, step)


def _update_membership(db, principal, club_id, user_id, action, move, values):
    repo = Repository(db)

    def step():
        club = repo.require(repo.get_club(club_id), "club", club_id)
        membership = repo.require(repo.get_membership(club_id, user_id), "membership", (club_id, user_id))
        decision = authorize(principal, action, membership, parent=club)
        if not decision:
            return decision
        new_state = transition(EntityType.MEMBERSHIP, membership.status, move)
        if isinstance(new_state, InvalidTransition):
            return new_state
        repo.conditional_update(
            ClubMembership, membership.id, "status", membership.status, {"status": new_state, **values}
        )
        return membership

    return _retry_once(repo, step)


def decide_membership(db: Session, principal: Principal, club_id: int, user_id: int, approve: bool):
    if approve:
        return _update_membership(db, principal, club_id, user_id, Action.APPROVE_MEMBERSHIP, Transition.APPROVE, {})
    return _update_membership(db, principal, club_id, user_id, Action.REJECT_MEMBERSHIP, Transition.REJECT, {})


def change_member_role(db: Session, principal: Principal, club_id: int, user_id: int, role: str):
    role = ClubRole(role).value
    return _update_membership(
        db, principal, club_id, user_id, Action.CHANGE_MEMBER_ROLE, Transition.CHANGE_ROLE, {"role": role}
    )


def _drop_membership(db, principal, club_id, user_id, action, move):
    repo = Repository(db)
    club = repo.require(repo.get_club(club_id), "club", club_id)
    membership = repo.require(repo.get_membership(club_id, user_id), "membership", (club_id, user_id))
    decision = authorize(principal, action, membership, parent=club)
    if not decision:
        return decision
    outcome = transition(EntityType.MEMBERSHIP, membership.status, move)
    if isinstance(outcome, InvalidTransition):
        return outcome
    repo.delete(membership)
    return membership


def leave_club(db: Session, principal: Principal, club_id: int):
    return _drop_membership(db, principal, club_id, principal.id, Action.LEAVE_CLUB, Transition.LEAVE)


def remove_member(db: Session, principal: Principal, club_id: int, user_id: int):
    return _drop_membership(db, principal, club_id, user_id, Action.REMOVE_MEMBER, Transition.REMOVE)


def club_members(db: Session, principal: Principal, club_id: int, status: str = MembershipStatus.APPROVED.value):
    """List a club's memberships in ``status``.

    Approved members are public to anyone who can see the club. Pending and
    rejected requests are only shown to the club creator and platform admins.
    """

    club = get_club(db, principal, club_id)
    if not club:
        return club
    status = MembershipStatus(status).value
    if status != MembershipStatus.APPROVED.value:
        decision = authorize(principal, Action.VIEW_MEMBERSHIP_REQUESTS, club)
        if not decision:
            return decision
    return Repository(db).memberships(club.id, status)


def pending_memberships(db: Session, principal: Principal, club_id: int):
    return club_members(db, principal, club_id, MembershipStatus.PENDING.value)


# events


def create_event(
    db: Session,
    principal: Principal,
    club_id: int,
    title: str,
    event_date: datetime,
    *,
    description: str | None = None,
    location: str | None = None,
    category: str | None = None,
    is_free: bool = True,
    price=None,
):
    check_event_pricing(is_free, price)
    if category is not None and category not in EVENT_CATEGORIES:
        raise ValueError(f"unknown event category {category!r}")

    repo = Repository(db)
    club = repo.require(repo.get_club(club_id), "club", club_id)
    membership = repo.get_membership(club_id, principal.id)
    decision = authorize(principal, Action.CREATE_EVENT, club, existing=membership)
    if not decision:
        return decision
    outcome = transition(EntityType.EVENT, None, Transition.CREATE)
    if isinstance(outcome, InvalidTransition):
        return outcome

    event = Event(
        club_id=club_id,
        creator_id=principal.id,
        title=title,
        description=description,
        location=location,
        event_date=event_date,
        category=category,
        is_free=is_free,
        price=price,
    )
    repo.insert(event)
    logger.info("event %s created in club %s by %s", event.id, club_id, principal.id)
    return event


def delete_event(db: Session, principal: Principal, event_id: int):
    repo = Repository(db)
    event = repo.require(repo.get_event(event_id), "event", event_id)
    decision = authorize(principal, Action.DELETE_EVENT, event)
    if not decision:
        return decision
    outcome = transition(EntityType.EVENT, EXISTS, Transition.DELETE)
    if isinstance(outcome, InvalidTransition):
        return outcome
    repo.delete(event)
    return event


# flags


def file_flag(
    db: Session,
    principal: Principal,
    kind: str,
    target_id: int,
    reason: str,
    details: str | None = None,
):
    if reason not in FLAG_REASONS:
        raise ValueError(f"unknown flag reason {reason!r}")
    model = flag_model(kind)
    repo = Repository(db)
    target = repo.require(repo.get_flag_target(kind, target_id), kind, target_id)
    existing = repo.find_flag(kind, target_id, principal.id)
    decision = authorize(principal, Action.FILE_FLAG, target, existing=existing)
    if not decision:
        return decision
    status = transition(EntityType.FLAG, None, Transition.FILE)

    flag = model(target_id=target_id, reporter_id=principal.id, reason=reason, details=details, status=status)
    try:
        return repo.insert(flag)
    except DuplicateEntityError:
        return Deny(DenyReason.ALREADY_EXISTS, "you have already flagged this")


def flags_for(db: Session, principal: Principal, kind: str, target_id: int):
    repo = Repository(db)
    target = repo.require(repo.get_flag_target(kind, target_id), kind, target_id)
    decision = authorize(principal, Action.VIEW_FLAGS, target)
    if not decision:
        return decision
    return repo.flags_for(kind, target_id)


def transition_flag(
    db: Session,
    principal: Principal,
    kind: str,
    flag_id: int,
    status: str,
    notes: str | None = None,
    audit: ModerationLog | None = None,
):
    try:
        move, action, log_action = _FLAG_MOVES[status]
    except KeyError:
        raise ValueError(f"flags cannot be moved to {status!r}") from None

    model = flag_model(kind)
    repo = Repository(db)
    audit = audit or ModerationLog(db)

    def step():
        flag = repo.require(repo.get_flag(kind, flag_id), "flag", flag_id)
        target = repo.require(repo.get_flag_target(kind, flag.target_id), kind, flag.target_id)
        decision = authorize(principal, action, flag, parent=target)
        if not decision:
            return decision
        previous = flag.status
        new_state = transition(EntityType.FLAG, previous, move)
        if isinstance(new_state, InvalidTransition):
            return new_state
        repo.conditional_update(
            model,
            flag.id,
            "status",
            previous,
            {"status": new_state, "reviewed_by": principal.id, "reviewed_at": datetime.utcnow()},
        )
        audit.record(
            principal.id,
            log_action,
            EntityType.FLAG,
            flag.id,
            {
                "flag_type": kind,
                "entity_id": flag.target_id,
                "reason": flag.reason,
                "previous_status": previous,
                "status": new_state,
                "notes": notes,
            },
        )
        return flag

    return _retry_once(repo, step)


def withdraw_flag(db: Session, principal: Principal, kind: str, flag_id: int):
    repo = Repository(db)
    flag = repo.require(repo.get_flag(kind, flag_id), "flag", flag_id)
    decision = authorize(principal, Action.WITHDRAW_FLAG, flag)
    if not decision:
        return decision
    outcome = transition(EntityType.FLAG, flag.status, Transition.WITHDRAW)
    if isinstance(outcome, InvalidTransition):
        return outcome
    repo.delete(flag)
    return flag


def all_flags(
    db: Session,
    principal: Principal,
    status: str | None = None,
    kind: str | None = None,
    limit: int = 50,
    offset: int = 0,
):
    decision = authorize(principal, Action.VIEW_ALL_FLAGS)
    if not decision:
        return decision
    if status is not None:
        status = FlagStatus(status).value
    kinds = (kind,) if kind else FLAG_KINDS
    return Repository(db).all_flags(kinds, status, min(limit, MAX_PAGE_SIZE), offset)


# admin dashboard


def moderation_logs(db: Session, principal: Principal, entity_type: str | None = None, limit: int = 100):
    return ModerationLog(db).list_entries(principal, entity_type, limit)


def _flag_breakdown(counts: dict[str, int]) -> dict[str, int]:
    breakdown = {"total": sum(counts.values())}
    breakdown.update({status.value: counts.get(status.value, 0) for status in FlagStatus})
    return breakdown


def admin_stats(db: Session, principal: Principal):
    decision = authorize(principal, Action.VIEW_STATS)
    if not decision:
        return decision
    repo = Repository(db)

    event_flags = _flag_breakdown(repo.count_by(flag_model("event"), "status"))
    club_flags = _flag_breakdown(repo.count_by(flag_model("club"), "status"))
    combined = {key: event_flags[key] + club_flags[key] for key in event_flags}

    by_status = repo.count_by(Club, "approval_status")
    clubs = {status.value: by_status.get(status.value, 0) for status in ApprovalStatus}
    clubs["total"] = sum(by_status.values())
    clubs["approval_rate"] = (
        f"{clubs[ApprovalStatus.APPROVED.value] / clubs['total'] * 100:.1f}%" if clubs["total"] else "0%"
    )

    pending_flags = combined[FlagStatus.PENDING.value]
    pending_clubs = clubs[ApprovalStatus.PENDING.value]
    return {
        "summary": {
            "total_pending_items": pending_flags + pending_clubs,
            "pending_flags": pending_flags,
            "pending_clubs": pending_clubs,
            "requires_attention": pending_flags + pending_clubs > 0,
        },
        "flags": {"event_flags": event_flags, "club_flags": club_flags, "combined": combined},
        "clubs": clubs,
        "recent_activity": repo.moderation_logs(limit=RECENT_ACTIVITY_SIZE),
        "fetched_at": datetime.utcnow(),
    }
