from datetime import datetime
from decimal import Decimal

import pytest
from sqlalchemy import func, select, update
from sqlalchemy.event import listen, remove
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clubgate import metrics, models, services
from clubgate.db import make_engine
from clubgate.errors import NotFoundError, StorageConflict
from clubgate.moderation_log import ModerationLog
from clubgate.policy import Deny, DenyReason
from clubgate.repository import Repository
from clubgate.state_machine import GRAPHS, EntityType, InvalidTransition

EVENT_DATE = datetime(2030, 3, 14, 18, 0)


def approved_club(db, people, name="Robotics Society"):
    club = services.create_club(db, people.bob, name, "Build robots on weekends")
    services.approve_club(db, people.carol, club.id)
    return club


def log_entries(db, action=None):
    stmt = select(models.ModerationLogEntry)
    if action:
        stmt = stmt.where(models.ModerationLogEntry.action == action)
    return db.execute(stmt).scalars().all()


def count(db, model, **filters):
    stmt = select(func.count()).select_from(model)
    for column, value in filters.items():
        stmt = stmt.where(getattr(model, column) == value)
    return db.execute(stmt).scalar()


# Scenario 1


def test_student_cannot_create_club(db, people):
    outcome = services.create_club(db, people.alice, "Alice's Club")
    assert isinstance(outcome, Deny)
    assert outcome.reason == DenyReason.NOT_STUDENT_LEADER
    assert count(db, models.Club) == 0


# Scenario 2


def test_leader_club_is_pending_until_admin_approves(db, people):
    club = services.create_club(db, people.bob, "Chess Club", "Weekly blitz")
    assert club.approval_status == "pending"
    creator_row = Repository(db).get_membership(club.id, people.bob.id)
    assert (creator_row.role, creator_row.status) == ("admin", "approved")

    approved = services.approve_club(db, people.carol, club.id)
    assert approved.approval_status == "approved"
    assert approved.approved_by == people.carol.id
    assert approved.approved_at is not None

    entries = log_entries(db)
    assert len(entries) == 1
    assert entries[0].action == "club_approved"
    assert entries[0].admin_id == people.carol.id
    assert entries[0].entity_type == "club"
    assert entries[0].entity_id == club.id
    assert entries[0].details["previous_status"] == "pending"


def test_admin_created_club_is_approved_immediately(db, people):
    club = services.create_club(db, people.carol, "Admin Club")
    assert club.approval_status == "approved"
    assert club.approved_by == people.carol.id


def without_edge(monkeypatch, entity_type, edge):
    graph = {key: target for key, target in GRAPHS[entity_type].items() if key != edge}
    monkeypatch.setitem(GRAPHS, entity_type, graph)


def test_club_creation_follows_the_club_graph(db, people, monkeypatch):
    without_edge(monkeypatch, EntityType.CLUB, ("pending", "approve"))
    assert services.create_club(db, people.bob, "Still Pending").approval_status == "pending"
    # An admin's club is created and approved in one go, so it needs both edges.
    assert isinstance(services.create_club(db, people.carol, "Never Approved"), InvalidTransition)

    without_edge(monkeypatch, EntityType.CLUB, (None, "create"))
    assert isinstance(services.create_club(db, people.frank, "Never Created"), InvalidTransition)
    assert count(db, models.Club) == 1


def test_event_creation_follows_the_event_graph(db, people, monkeypatch):
    club = approved_club(db, people)
    event = services.create_event(db, people.bob, club.id, "Kept Event", EVENT_DATE)

    without_edge(monkeypatch, EntityType.EVENT, ("exists", "delete"))
    assert isinstance(services.delete_event(db, people.bob, event.id), InvalidTransition)

    without_edge(monkeypatch, EntityType.EVENT, (None, "create"))
    assert isinstance(services.create_event(db, people.bob, club.id, "Ghost Event", EVENT_DATE), InvalidTransition)
    assert count(db, models.Event) == 1


def test_duplicate_club_name_is_already_exists(db, people):
    services.create_club(db, people.bob, "Chess Club")
    outcome = services.create_club(db, people.frank, "Chess Club")
    assert outcome.reason == DenyReason.ALREADY_EXISTS
    assert count(db, models.Club) == 1


def test_reject_then_reapprove_club(db, people):
    club = services.create_club(db, people.bob, "Night Owls")

    assert isinstance(services.reject_club(db, people.carol, club.id, "   "), InvalidTransition)
    assert club.approval_status == "pending"

    rejected = services.reject_club(db, people.carol, club.id, "Duplicate of Astronomy Club")
    assert rejected.approval_status == "rejected"
    assert rejected.rejection_reason == "Duplicate of Astronomy Club"

    again = services.reject_club(db, people.carol, club.id, "Still a duplicate")
    assert isinstance(again, InvalidTransition)

    reapproved = services.approve_club(db, people.carol, club.id)
    assert reapproved.approval_status == "approved"
    assert reapproved.rejection_reason is None
    assert [e.action for e in log_entries(db)] == ["club_rejected", "club_approved"]


def test_approving_an_approved_club_is_invalid_and_unlogged(db, people):
    club = approved_club(db, people)
    outcome = services.approve_club(db, people.carol, club.id)
    assert isinstance(outcome, InvalidTransition)
    assert len(log_entries(db, "club_approved")) == 1


def test_pending_club_visibility(db, people):
    club = services.create_club(db, people.bob, "Secret Society")
    assert services.get_club(db, people.alice, club.id).reason == DenyReason.NOT_OWNER
    assert services.get_club(db, people.bob, club.id) is club
    assert services.get_club(db, people.carol, club.id) is club
    assert services.visible_clubs(db, people.alice) == []

    services.approve_club(db, people.carol, club.id)
    assert services.get_club(db, people.alice, club.id) is club


def test_moderation_queue_is_admin_only(db, people):
    club = services.create_club(db, people.bob, "Queue Club")
    assert services.clubs_awaiting_review(db, people.carol) == [club]
    assert services.clubs_awaiting_review(db, people.frank) == []


def test_missing_club_raises_not_found(db, people):
    with pytest.raises(NotFoundError):
        services.approve_club(db, people.carol, 999)


# Scenario 3


def test_join_approve_and_duplicate_request(db, people):
    club = approved_club(db, people)

    membership = services.request_membership(db, people.dana, club.id)
    assert (membership.status, membership.role) == ("pending", "member")

    approved = services.decide_membership(db, people.bob, club.id, people.dana.id, approve=True)
    assert approved.status == "approved"

    outcome = services.request_membership(db, people.dana, club.id)
    assert outcome.reason == DenyReason.ALREADY_EXISTS
    assert count(db, models.ClubMembership, club_id=club.id, user_id=people.dana.id) == 1


def test_cannot_join_unapproved_club(db, people):
    club = services.create_club(db, people.bob, "Pending Club")
    assert services.request_membership(db, people.dana, club.id).reason == DenyReason.INVALID_STATE


def test_rejected_member_may_request_again(db, people):
    club = approved_club(db, people)
    services.request_membership(db, people.dana, club.id)
    rejected = services.decide_membership(db, people.bob, club.id, people.dana.id, approve=False)
    assert rejected.status == "rejected"

    again = services.request_membership(db, people.dana, club.id)
    assert again.status == "pending"
    assert count(db, models.ClubMembership, club_id=club.id, user_id=people.dana.id) == 1


def test_deciding_twice_is_invalid(db, people):
    club = approved_club(db, people)
    services.request_membership(db, people.dana, club.id)
    services.decide_membership(db, people.bob, club.id, people.dana.id, approve=True)
    outcome = services.decide_membership(db, people.bob, club.id, people.dana.id, approve=False)
    assert isinstance(outcome, InvalidTransition)
    assert Repository(db).get_membership(club.id, people.dana.id).status == "approved"


def test_platform_admin_can_decide_any_membership(db, people):
    club = approved_club(db, people)
    services.request_membership(db, people.dana, club.id)
    outcome = services.decide_membership(db, people.carol, club.id, people.dana.id, approve=True)
    assert outcome.status == "approved"


def test_leave_change_role_and_remove(db, people):
    club = approved_club(db, people)
    for person in (people.dana, people.eve):
        services.request_membership(db, person, club.id)
        services.decide_membership(db, people.bob, club.id, person.id, approve=True)

    promoted = services.change_member_role(db, people.bob, club.id, people.dana.id, "admin")
    assert promoted.role == "admin"
    assert services.change_member_role(db, people.eve, club.id, people.dana.id, "member").reason == DenyReason.NOT_OWNER

    assert services.remove_member(db, people.dana, club.id, people.eve.id).reason == DenyReason.NOT_OWNER
    assert services.remove_member(db, people.bob, club.id, people.eve.id) is not None
    assert Repository(db).get_membership(club.id, people.eve.id) is None

    services.leave_club(db, people.dana, club.id)
    assert Repository(db).get_membership(club.id, people.dana.id) is None

    assert services.leave_club(db, people.bob, club.id).reason == DenyReason.INVALID_STATE
    assert services.remove_member(db, people.carol, club.id, people.bob.id).reason == DenyReason.INVALID_STATE


def test_pending_member_cannot_leave(db, people):
    club = approved_club(db, people)
    services.request_membership(db, people.dana, club.id)
    assert isinstance(services.leave_club(db, people.dana, club.id), InvalidTransition)


def test_membership_requests_are_visible_to_creator_only(db, people):
    club = approved_club(db, people)
    services.request_membership(db, people.dana, club.id)
    services.request_membership(db, people.eve, club.id)
    services.decide_membership(db, people.bob, club.id, people.eve.id, approve=False)

    for status in ("pending", "rejected"):
        listed = services.club_members(db, people.alice, club.id, status)
        assert isinstance(listed, Deny)
        assert listed.reason == DenyReason.NOT_OWNER
    assert services.pending_memberships(db, people.frank, club.id).reason == DenyReason.NOT_OWNER

    # Anyone who can see the club sees only its approved members.
    assert [m.user_id for m in services.club_members(db, people.alice, club.id)] == [people.bob.id]

    assert [m.user_id for m in services.pending_memberships(db, people.bob, club.id)] == [people.dana.id]
    assert [m.user_id for m in services.club_members(db, people.carol, club.id, "rejected")] == [people.eve.id]


def test_club_admin_member_cannot_see_requests(db, people):
    club = approved_club(db, people)
    services.request_membership(db, people.dana, club.id)
    services.decide_membership(db, people.bob, club.id, people.dana.id, approve=True)
    services.change_member_role(db, people.bob, club.id, people.dana.id, "admin")
    services.request_membership(db, people.eve, club.id)

    assert services.pending_memberships(db, people.dana, club.id).reason == DenyReason.NOT_OWNER


# Concurrency at the storage boundary


def test_concurrent_join_requests_leave_one_row(db, people, monkeypatch):
    club = approved_club(db, people)
    # Every request checks before any insert lands, as interleaved requests would.
    monkeypatch.setattr(Repository, "get_membership", lambda self, club_id, user_id: None)

    outcomes = [services.request_membership(db, people.dana, club.id) for _ in range(5)]

    assert sum(isinstance(o, models.ClubMembership) for o in outcomes) == 1
    assert [o.reason for o in outcomes if isinstance(o, Deny)] == [DenyReason.ALREADY_EXISTS] * 4
    assert count(db, models.ClubMembership, club_id=club.id, user_id=people.dana.id) == 1


def test_concurrent_flags_leave_one_row(db, people, monkeypatch):
    club = approved_club(db, people)
    monkeypatch.setattr(Repository, "find_flag", lambda self, kind, target_id, reporter_id: None)

    outcomes = [services.file_flag(db, people.eve, "club", club.id, "Spam") for _ in range(3)]

    assert sum(isinstance(o, models.ClubFlag) for o in outcomes) == 1
    assert count(db, models.ClubFlag, target_id=club.id, reporter_id=people.eve.id) == 1


def test_lost_approval_race_becomes_invalid_transition(db, people):
    club = services.create_club(db, people.bob, "Race Club")
    # Another admin approves behind this session's back; our snapshot stays stale.
    db.execute(
        update(models.Club)
        .where(models.Club.id == club.id)
        .values(approval_status="approved")
        .execution_options(synchronize_session=False)
    )
    assert club.approval_status == "pending"
    conflicts = metrics.STATE_CONFLICTS.labels(entity_type="clubs")
    before = conflicts._value.get()

    outcome = services.approve_club(db, people.carol, club.id)

    assert isinstance(outcome, InvalidTransition)
    assert outcome.current == "approved"
    assert log_entries(db) == []
    assert conflicts._value.get() == before + 1


def test_second_conflict_propagates(db, people, monkeypatch):
    club = services.create_club(db, people.bob, "Unlucky Club")
    calls = []

    def always_conflict(self, model, entity_id, column, expected, values):
        calls.append(entity_id)
        raise StorageConflict(model.__tablename__, entity_id, expected)

    monkeypatch.setattr(Repository, "conditional_update", always_conflict)
    with pytest.raises(StorageConflict):
        services.approve_club(db, people.carol, club.id)
    assert calls == [club.id, club.id]


# Ownership independence


def test_membership_decisions_never_read_other_memberships(db, people, monkeypatch):
    club = approved_club(db, people)
    services.request_membership(db, people.dana, club.id)
    services.request_membership(db, people.eve, club.id)
    services.decide_membership(db, people.bob, club.id, people.eve.id, approve=True)
    services.change_member_role(db, people.bob, club.id, people.eve.id, "admin")

    real_get_membership = Repository.get_membership

    def only_row_under_test(self, club_id, user_id):
        if user_id != people.dana.id:
            raise AssertionError(f"membership of {user_id} read while authorizing")
        return real_get_membership(self, club_id, user_id)

    def unreadable(self, *args, **kwargs):
        raise AssertionError("membership table listed while authorizing")

    monkeypatch.setattr(Repository, "get_membership", only_row_under_test)
    monkeypatch.setattr(Repository, "memberships", unreadable)

    # Eve is a club-admin member but not the creator: still not an owner.
    denied = services.decide_membership(db, people.eve, club.id, people.dana.id, approve=True)
    assert denied.reason == DenyReason.NOT_OWNER
    assert services.decide_membership(db, people.bob, club.id, people.dana.id, approve=True).status == "approved"


# Events


def test_event_creation_requires_club_authority(db, people):
    club = approved_club(db, people)

    event = services.create_event(db, people.bob, club.id, "Robot Wars", EVENT_DATE, category="career")
    assert event.creator_id == people.bob.id
    assert event.is_free and event.price is None

    assert services.create_event(db, people.alice, club.id, "Crash", EVENT_DATE).reason == DenyReason.NOT_OWNER
    assert services.create_event(db, people.carol, club.id, "Audit", EVENT_DATE).reason == DenyReason.NOT_OWNER

    services.request_membership(db, people.dana, club.id)
    services.decide_membership(db, people.bob, club.id, people.dana.id, approve=True)
    services.change_member_role(db, people.bob, club.id, people.dana.id, "admin")
    paid = services.create_event(
        db, people.dana, club.id, "Gala", EVENT_DATE, is_free=False, price=Decimal("12.50")
    )
    assert paid.price == Decimal("12.50")


@pytest.mark.parametrize(
    "is_free,price",
    [(True, Decimal("5.00")), (False, None), (False, Decimal("0")), (False, Decimal("-1"))],
)
def test_event_pricing_rules(db, people, is_free, price):
    club = approved_club(db, people)
    with pytest.raises(ValueError):
        services.create_event(db, people.bob, club.id, "Bad pricing", EVENT_DATE, is_free=is_free, price=price)
    assert count(db, models.Event) == 0


def test_only_event_creator_deletes_event(db, people):
    club = approved_club(db, people)
    event = services.create_event(db, people.bob, club.id, "Robot Wars", EVENT_DATE)
    assert services.delete_event(db, people.carol, event.id).reason == DenyReason.NOT_OWNER
    services.delete_event(db, people.bob, event.id)
    assert count(db, models.Event) == 0


# Scenario 4


def test_event_flag_lifecycle(db, people):
    club = approved_club(db, people)
    event = services.create_event(db, people.bob, club.id, "Robot Wars", EVENT_DATE)

    flag = services.file_flag(db, people.eve, "event", event.id, "Spam")
    assert flag.status == "pending"
    assert services.file_flag(db, people.eve, "event", event.id, "Other").reason == DenyReason.ALREADY_EXISTS

    resolved = services.transition_flag(db, people.bob, "event", flag.id, "resolved", notes="Removed the spam link")
    assert resolved.status == "resolved"
    assert resolved.reviewed_by == people.bob.id
    entries = log_entries(db, "flag_resolved")
    assert len(entries) == 1
    assert entries[0].admin_id == people.bob.id
    assert entries[0].details["flag_type"] == "event"
    assert entries[0].details["notes"] == "Removed the spam link"

    outcome = services.transition_flag(db, people.bob, "event", flag.id, "dismissed")
    assert isinstance(outcome, InvalidTransition)
    assert Repository(db).get_flag("event", flag.id).status == "resolved"
    assert log_entries(db, "flag_dismissed") == []


def test_reviewed_flag_can_still_be_dismissed(db, people):
    club = approved_club(db, people)
    flag = services.file_flag(db, people.eve, "club", club.id, "Misinformation", details="Fake meeting times")
    assert services.transition_flag(db, people.carol, "club", flag.id, "reviewed").status == "reviewed"
    assert services.transition_flag(db, people.carol, "club", flag.id, "dismissed").status == "dismissed"
    assert [e.action for e in log_entries(db) if e.entity_type == "flag"] == ["flag_reviewed", "flag_dismissed"]


def test_flags_cannot_move_back_to_pending(db, people):
    club = approved_club(db, people)
    flag = services.file_flag(db, people.eve, "club", club.id, "Spam")
    with pytest.raises(ValueError):
        services.transition_flag(db, people.carol, "club", flag.id, "pending")


def test_flag_reason_vocabulary(db, people):
    club = approved_club(db, people)
    with pytest.raises(ValueError):
        services.file_flag(db, people.eve, "club", club.id, "I just don't like it")


def test_withdraw_only_own_pending_flag(db, people):
    club = approved_club(db, people)
    flag = services.file_flag(db, people.eve, "club", club.id, "Spam")
    assert services.withdraw_flag(db, people.dana, "club", flag.id).reason == DenyReason.NOT_OWNER

    services.transition_flag(db, people.bob, "club", flag.id, "reviewed")
    assert services.withdraw_flag(db, people.eve, "club", flag.id).reason == DenyReason.INVALID_STATE

    second = services.file_flag(db, people.dana, "club", club.id, "Other")
    services.withdraw_flag(db, people.dana, "club", second.id)
    assert Repository(db).get_flag("club", second.id) is None


def test_flag_listing_is_owner_or_admin(db, people):
    club = approved_club(db, people)
    services.file_flag(db, people.eve, "club", club.id, "Spam")
    assert len(services.flags_for(db, people.bob, "club", club.id)) == 1
    assert len(services.flags_for(db, people.carol, "club", club.id)) == 1
    assert services.flags_for(db, people.eve, "club", club.id).reason == DenyReason.NOT_OWNER


# Scenario 5


def test_non_owner_moderation_is_not_owner(db, people):
    club = services.create_club(db, people.bob, "Owned Club")
    services.approve_club(db, people.carol, club.id)
    pending_club = services.create_club(db, people.bob, "Other Club")
    flag = services.file_flag(db, people.eve, "club", club.id, "Spam")

    outcomes = [
        services.approve_club(db, people.frank, pending_club.id),
        services.reject_club(db, people.alice, pending_club.id, "nope"),
        services.transition_flag(db, people.frank, "club", flag.id, "resolved"),
        services.transition_flag(db, people.alice, "club", flag.id, "dismissed"),
        services.transition_flag(db, people.eve, "club", flag.id, "reviewed"),
    ]
    assert [o.reason for o in outcomes] == [DenyReason.NOT_OWNER] * 5
    assert pending_club.approval_status == "pending"
    assert Repository(db).get_flag("club", flag.id).status == "pending"


# Moderation log


def log_failures(action):
    return metrics.MODERATION_LOG_WRITE_FAILURES.labels(action=action)._value.get()


def test_log_failure_does_not_undo_transition(db, people, caplog):
    club = services.create_club(db, people.bob, "Best Effort Club")
    broken_engine = make_engine("sqlite://")  # no tables: every write fails
    broken_session = Session(bind=broken_engine)
    audit = ModerationLog(broken_session)
    before = log_failures("club_approved")

    approved = services.approve_club(db, people.carol, club.id, audit=audit)

    assert approved.approval_status == "approved"
    assert log_failures("club_approved") == before + 1
    assert "failed to record moderation action club_approved" in caplog.text
    broken_session.close()
    broken_engine.dispose()


def test_failed_log_write_in_same_session_keeps_committed_approval(db, people, session_factory):
    club = services.create_club(db, people.bob, "Same Session Club")
    db.commit()
    before = log_failures("club_approved")

    def refuse_log_entries(session, flush_context, instances):
        if any(isinstance(obj, models.ModerationLogEntry) for obj in session.new):
            raise SQLAlchemyError("log store unavailable")

    listen(db, "before_flush", refuse_log_entries)
    try:
        approved = services.approve_club(db, people.carol, club.id)
        db.commit()
    finally:
        remove(db, "before_flush", refuse_log_entries)

    assert approved.approval_status == "approved"
    assert log_failures("club_approved") == before + 1

    with session_factory() as fresh:
        assert fresh.get(models.Club, club.id).approval_status == "approved"
        assert count(fresh, models.ModerationLogEntry) == 0


def test_logs_are_admin_only(db, people):
    approved_club(db, people)
    assert services.moderation_logs(db, people.bob).reason == DenyReason.NOT_ADMIN
    entries = services.moderation_logs(db, people.carol, entity_type="club")
    assert [e.action for e in entries] == ["club_approved"]


def test_admin_deleting_someone_elses_club_is_logged(db, people):
    club = approved_club(db, people)
    event = services.create_event(db, people.bob, club.id, "Robot Wars", EVENT_DATE)
    services.request_membership(db, people.dana, club.id)
    services.file_flag(db, people.eve, "club", club.id, "Spam")
    services.file_flag(db, people.eve, "event", event.id, "Spam")

    assert services.delete_club(db, people.frank, club.id).reason == DenyReason.NOT_OWNER
    services.delete_club(db, people.carol, club.id)
    db.expire_all()

    assert count(db, models.Club) == 0
    assert count(db, models.ClubMembership) == 0
    assert count(db, models.Event) == 0
    assert count(db, models.ClubFlag) == 0
    assert count(db, models.EventFlag) == 0
    assert [e.action for e in log_entries(db, "club_deleted")] == ["club_deleted"]


def test_creator_deleting_own_club_is_not_logged(db, people):
    club = services.create_club(db, people.bob, "Short Lived")
    services.delete_club(db, people.bob, club.id)
    assert log_entries(db) == []


# Admin dashboard


def test_rejected_clubs_listing_is_admin_only(db, people):
    approved_club(db, people)
    turned_down = services.create_club(db, people.frank, "Turned Down")
    services.reject_club(db, people.carol, turned_down.id, "Too similar to Robotics Society")

    assert services.rejected_clubs(db, people.bob).reason == DenyReason.NOT_ADMIN
    assert services.rejected_clubs(db, people.carol) == [turned_down]
    assert services.rejected_clubs(db, people.carol, offset=1) == []


def test_managed_clubs_follow_club_admin_memberships(db, people):
    club = approved_club(db, people)
    other = services.create_club(db, people.frank, "Film Society")

    assert services.managed_clubs(db, people.bob) == [club]
    assert services.managed_clubs(db, people.dana) == []

    services.request_membership(db, people.dana, club.id)
    services.decide_membership(db, people.bob, club.id, people.dana.id, approve=True)
    assert services.managed_clubs(db, people.dana) == []
    services.change_member_role(db, people.bob, club.id, people.dana.id, "admin")
    assert services.managed_clubs(db, people.dana) == [club]

    assert services.managed_clubs(db, people.carol) == [other, club]


def test_all_flags_filters_by_status_and_kind(db, people):
    club = approved_club(db, people)
    event = services.create_event(db, people.bob, club.id, "Robot Wars", EVENT_DATE)
    club_flag = services.file_flag(db, people.eve, "club", club.id, "Spam")
    event_flag = services.file_flag(db, people.dana, "event", event.id, "Other")
    services.transition_flag(db, people.carol, "event", event_flag.id, "dismissed")

    assert services.all_flags(db, people.bob).reason == DenyReason.NOT_ADMIN
    assert {type(f) for f in services.all_flags(db, people.carol)} == {models.ClubFlag, models.EventFlag}
    assert services.all_flags(db, people.carol, status="pending") == [club_flag]
    assert services.all_flags(db, people.carol, kind="event") == [event_flag]
    assert services.all_flags(db, people.carol, status="pending", kind="event") == []
    with pytest.raises(ValueError):
        services.all_flags(db, people.carol, status="archived")


def test_admin_stats_counts_queue_and_activity(db, people):
    club = approved_club(db, people)
    services.create_club(db, people.frank, "Waiting Room")
    rejected = services.create_club(db, people.frank, "Turned Down")
    services.reject_club(db, people.carol, rejected.id, "Duplicate")
    services.create_club(db, people.carol, "Admin Club")
    flag = services.file_flag(db, people.eve, "club", club.id, "Spam")
    services.file_flag(db, people.dana, "club", club.id, "Other")
    services.transition_flag(db, people.carol, "club", flag.id, "resolved")

    assert services.admin_stats(db, people.bob).reason == DenyReason.NOT_ADMIN
    stats = services.admin_stats(db, people.carol)

    assert stats["clubs"] == {
        "pending": 1,
        "approved": 2,
        "rejected": 1,
        "total": 4,
        "approval_rate": "50.0%",
    }
    assert stats["flags"]["club_flags"]["total"] == 2
    assert stats["flags"]["club_flags"]["resolved"] == 1
    assert stats["flags"]["event_flags"]["total"] == 0
    assert stats["flags"]["combined"]["pending"] == 1
    assert stats["summary"] == {
        "total_pending_items": 2,
        "pending_flags": 1,
        "pending_clubs": 1,
        "requires_attention": True,
    }
    assert [e.action for e in stats["recent_activity"]] == ["flag_resolved", "club_rejected", "club_approved"]


def test_admin_stats_on_empty_platform(db, people):
    stats = services.admin_stats(db, people.carol)
    assert stats["clubs"]["approval_rate"] == "0%"
    assert stats["summary"]["requires_attention"] is False
    assert stats["recent_activity"] == []
