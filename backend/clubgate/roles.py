import logging
from dataclasses import dataclass
from enum import Enum

from sqlalchemy.orm import Session

from .errors import NotFoundError, Unauthenticated
from .models import Profile
from .repository import Repository

logger = logging.getLogger(__name__)


class Role(str, Enum):
    STUDENT = "student"
    STUDENT_LEADER = "student_leader"
    ADMIN = "admin"

    @property
    def rank(self) -> int:
        return _RANKS[self]

    def at_least(self, other: "Role") -> bool:
        return self.rank >= Role(other).rank


_RANKS = {Role.STUDENT: 0, Role.STUDENT_LEADER: 1, Role.ADMIN: 2}


@dataclass(frozen=True)
class Principal:
    """A resolved identity. Lives for one request only."""

    id: int
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN

    @property
    def is_leader(self) -> bool:
        return self.role.at_least(Role.STUDENT_LEADER)


def role_of(profile: Profile) -> Role:
    # The legacy platform flag wins over whatever the role column says.
    if profile.is_admin:
        return Role.ADMIN
    try:
        return Role(profile.role)
    except ValueError:
        logger.warning("profile %s has unknown role %r, treating as student", profile.id, profile.role)
        return Role.STUDENT


def resolve_role(db: Session, principal_id: int) -> Role:
    profile = Repository(db).get_profile(principal_id)
    if profile is None:
        raise NotFoundError("profile", principal_id)
    return role_of(profile)


def resolve_principal(db: Session, principal_id: int) -> Principal:
    return Principal(id=principal_id, role=resolve_role(db, principal_id))


def authenticate(db: Session, principal_id: int | None) -> Principal:
    """Resolve the caller of a request, or raise :class:`Unauthenticated`."""

    if not principal_id:
        raise Unauthenticated("no principal supplied")
    try:
        return resolve_principal(db, principal_id)
    except NotFoundError:
        raise Unauthenticated(f"unknown principal {principal_id}") from None
