"""Storage boundary for the engine.

The repository hands out snapshots and applies writes; it makes no permission
decisions. Uniqueness is left to the database constraints and status changes
go through ``conditional_update`` so concurrent writers cannot double-apply.
"""

import logging

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .errors import DuplicateEntityError, NotFoundError, StorageConflict
from .models import (
    FLAG_MODELS,
    Club,
    ClubMembership,
    Event,
    ModerationLogEntry,
    Profile,
)
from .state_machine import ClubRole, MembershipStatus

logger = logging.getLogger(__name__)


def flag_model(kind: str):
    try:
        return FLAG_MODELS[kind]
    except KeyError:
        raise ValueError(f"unknown flag kind {kind!r}") from None


class Repository:
    def __init__(self, db: Session):
        self.db = db

    # reads

    def get_profile(self, profile_id: int) -> Profile | None:
        return self.db.get(Profile, profile_id)

    def get_club(self, club_id: int) -> Club | None:
        return self.db.get(Club, club_id)

    def get_event(self, event_id: int) -> Event | None:
        return self.db.get(Event, event_id)

    def get_membership(self, club_id: int, user_id: int) -> ClubMembership | None:
        return self.db.execute(
            select(ClubMembership).where(
                ClubMembership.club_id == club_id,
                ClubMembership.user_id == user_id,
            )
        ).scalar_one_or_none()

    def get_flag(self, kind: str, flag_id: int):
        return self.db.get(flag_model(kind), flag_id)

    def find_flag(self, kind: str, target_id: int, reporter_id: int):
        model = flag_model(kind)
        return self.db.execute(
            select(model).where(model.target_id == target_id, model.reporter_id == reporter_id)
        ).scalar_one_or_none()

    def get_flag_target(self, kind: str, target_id: int):
        return self.get_club(target_id) if kind == "club" else self.get_event(target_id)

    def require(self, entity, entity_type: str, entity_id):
        if entity is None:
            raise NotFoundError(entity_type, entity_id)
        return entity

    # listings

    def clubs(self, approval_status: str | None = None) -> list[Club]:
        stmt = select(Club)
        if approval_status:
            stmt = stmt.where(Club.approval_status == approval_status)
        return list(self.db.execute(stmt.order_by(Club.name.asc())).scalars().all())

    def reviewed_clubs(self, approval_status: str, limit: int, offset: int = 0) -> list[Club]:
        stmt = (
            select(Club)
            .where(Club.approval_status == approval_status)
            .order_by(Club.approved_at.desc(), Club.id.desc())
            .limit(limit)
            .offset(offset)
        )
        return list(self.db.execute(stmt).scalars().all())

    def administered_clubs(self, user_id: int) -> list[tuple[Club, ClubMembership]]:
        """Clubs where ``user_id`` holds an approved admin membership, with that membership."""

        stmt = (
            select(Club, ClubMembership)
            .join(ClubMembership, ClubMembership.club_id == Club.id)
            .where(
                ClubMembership.user_id == user_id,
                ClubMembership.role == ClubRole.ADMIN.value,
                ClubMembership.status == MembershipStatus.APPROVED.value,
            )
            .order_by(Club.name.asc())
        )
        return [(club, membership) for club, membership in self.db.execute(stmt).all()]

    def memberships(self, club_id: int, status: str | None = None) -> list[ClubMembership]:
        stmt = select(ClubMembership).where(ClubMembership.club_id == club_id)
        if status:
            stmt = stmt.where(ClubMembership.status == status)
        return list(self.db.execute(stmt.order_by(ClubMembership.created_at.asc())).scalars().all())

    def flags_for(self, kind: str, target_id: int) -> list:
        model = flag_model(kind)
        return list(
            self.db.execute(
                select(model).where(model.target_id == target_id).order_by(model.created_at.desc())
            )
            .scalars()
            .all()
        )

    def all_flags(self, kinds, status: str | None = None, limit: int = 50, offset: int = 0) -> list:
        """Flags of every kind in ``kinds`` merged newest first."""

        flags = []
        for kind in kinds:
            model = flag_model(kind)
            stmt = select(model)
            if status:
                stmt = stmt.where(model.status == status)
            stmt = stmt.order_by(model.created_at.desc(), model.id.desc()).limit(offset + limit)
            flags.extend(self.db.execute(stmt).scalars().all())
        flags.sort(key=lambda flag: (flag.created_at, flag.id), reverse=True)
        return flags[offset : offset + limit]

    def count_by(self, model, column: str) -> dict[str, int]:
        grouped = getattr(model, column)
        rows = self.db.execute(select(grouped, func.count()).group_by(grouped)).all()
        return {value: total for value, total in rows}

    def moderation_logs(self, entity_type: str | None = None, limit: int = 100) -> list[ModerationLogEntry]:
        stmt = select(ModerationLogEntry)
        if entity_type:
            stmt = stmt.where(ModerationLogEntry.entity_type == entity_type)
        stmt = stmt.order_by(ModerationLogEntry.created_at.desc(), ModerationLogEntry.id.desc()).limit(limit)
        return list(self.db.execute(stmt).scalars().all())

    # writes

    def insert(self, *rows):
        """Insert ``rows`` atomically; a uniqueness violation leaves the session usable."""

        try:
            with self.db.begin_nested():
                self.db.add_all(rows)
                self.db.flush()
        except IntegrityError as exc:
            logger.info("insert of %s rejected by constraint: %s", type(rows[0]).__name__, exc.orig)
            raise DuplicateEntityError(str(exc.orig)) from exc
        return rows[0]

    def insert_club(self, club: Club) -> Club:
        """Insert a club together with its creator's approved admin membership."""

        try:
            with self.db.begin_nested():
                self.db.add(club)
                self.db.flush()
                self.db.add(
                    ClubMembership(
                        club_id=club.id,
                        user_id=club.creator_id,
                        role=ClubRole.ADMIN.value,
                        status=MembershipStatus.APPROVED.value,
                    )
                )
                self.db.flush()
        except IntegrityError as exc:
            raise DuplicateEntityError(str(exc.orig)) from exc
        return club

    def conditional_update(self, model, entity_id: int, column: str, expected: str, values: dict) -> None:
        """Apply ``values`` only if ``column`` still holds ``expected``."""

        result = self.db.execute(
            update(model)
            .where(model.id == entity_id, getattr(model, column) == expected)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise StorageConflict(model.__tablename__, entity_id, expected)
        entity = self.db.get(model, entity_id)
        if entity is not None:
            self.db.refresh(entity)

    def delete(self, entity) -> None:
        self.db.delete(entity)
        self.db.flush()

    def reset(self) -> None:
        """Drop cached snapshots so the next read sees committed state."""

        self.db.expire_all()
