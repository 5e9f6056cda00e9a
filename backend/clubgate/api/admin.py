from typing import Literal

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from .. import services
from ..deps import get_db, get_principal, unwrap
from ..roles import Principal
from ..schemas import AdminStatsOut, ClubOut, ClubRejection, FlagOut, ModerationLogOut

router = APIRouter()


@router.get("/api/admin/clubs/pending", response_model=list[ClubOut])
def pending_clubs(db: Session = Depends(get_db), principal: Principal = Depends(get_principal)):
    return services.clubs_awaiting_review(db, principal)


@router.get("/api/admin/clubs/rejected", response_model=list[ClubOut])
def rejected_clubs(
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    return unwrap(services.rejected_clubs(db, principal, limit, offset))


@router.post("/api/admin/clubs/{club_id}/approve", response_model=ClubOut)
def approve_club(
    club_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    return unwrap(services.approve_club(db, principal, club_id))


@router.post("/api/admin/clubs/{club_id}/reject", response_model=ClubOut)
def reject_club(
    club_id: int,
    payload: ClubRejection,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    return unwrap(services.reject_club(db, principal, club_id, payload.reason))


@router.get("/api/admin/logs", response_model=list[ModerationLogOut])
def moderation_logs(
    entity_type: str | None = None,
    limit: int = 100,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    return unwrap(services.moderation_logs(db, principal, entity_type, limit))


@router.get("/api/admin/flags", response_model=list[FlagOut])
def all_flags(
    status: Literal["pending", "reviewed", "resolved", "dismissed"] | None = None,
    kind: Literal["club", "event"] | None = Query(None, alias="type"),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    return unwrap(services.all_flags(db, principal, status, kind, limit, offset))


@router.get("/api/admin/stats", response_model=AdminStatsOut)
def admin_stats(db: Session = Depends(get_db), principal: Principal = Depends(get_principal)):
    return unwrap(services.admin_stats(db, principal))
