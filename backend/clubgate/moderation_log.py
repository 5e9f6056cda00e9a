import logging
from datetime import datetime
from enum import Enum

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import metrics
from .models import ModerationLogEntry
from .policy import Action, Deny, authorize
from .repository import Repository
from .roles import Principal

logger = logging.getLogger(__name__)


class LogAction(str, Enum):
    CLUB_APPROVED = "club_approved"
    CLUB_REJECTED = "club_rejected"
    CLUB_DELETED = "club_deleted"
    FLAG_REVIEWED = "flag_reviewed"
    FLAG_RESOLVED = "flag_resolved"
    FLAG_DISMISSED = "flag_dismissed"


class ModerationLog:
    """Append-only audit trail of moderation decisions.

    Writes are best effort: the primary change has already been applied when
    ``record`` runs. A failed log write is logged and counted in
    ``clubgate_moderation_log_failures_total`` instead of undoing it.
    """

    def __init__(self, db: Session):
        self.db = db

    def record(self, admin_id: int, action, entity_type, entity_id: int, details: dict | None = None):
        entry = ModerationLogEntry(
            admin_id=admin_id,
            action=_value(action),
            entity_type=_value(entity_type),
            entity_id=entity_id,
            details=details or {},
            created_at=datetime.utcnow(),
        )
        try:
            with self.db.begin_nested():
                self.db.add(entry)
                self.db.flush()
        except SQLAlchemyError:
            # The entry must not ride along with the caller's next flush.
            if entry in self.db:
                self.db.expunge(entry)
            metrics.moderation_log_write_failure(entry.action)
            logger.exception(
                "failed to record moderation action %s on %s %s by %s",
                entry.action,
                entry.entity_type,
                entity_id,
                admin_id,
            )
            return None
        logger.info("moderation %s on %s %s by %s", entry.action, entry.entity_type, entity_id, admin_id)
        return entry

    def list_entries(self, principal: Principal, entity_type=None, limit: int = 100):
        decision = authorize(principal, Action.VIEW_LOGS)
        if isinstance(decision, Deny):
            return decision
        return Repository(self.db).moderation_logs(_value(entity_type) if entity_type else None, limit)


def _value(item):
    return item.value if isinstance(item, Enum) else item
