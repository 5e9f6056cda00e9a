from typing import Literal

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from .. import services
from ..deps import get_db, get_principal, unwrap
from ..roles import Principal
from ..schemas import FlagCreate, FlagOut, FlagStatusUpdate

router = APIRouter()

FlagKind = Literal["club", "event"]


@router.post("/api/clubs/{club_id}/flags", response_model=FlagOut, status_code=201)
def flag_club(
    club_id: int,
    payload: FlagCreate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    return unwrap(services.file_flag(db, principal, "club", club_id, payload.reason, payload.details))


@router.get("/api/clubs/{club_id}/flags", response_model=list[FlagOut])
def club_flags(
    club_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    return unwrap(services.flags_for(db, principal, "club", club_id))


@router.post("/api/events/{event_id}/flags", response_model=FlagOut, status_code=201)
def flag_event(
    event_id: int,
    payload: FlagCreate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    return unwrap(services.file_flag(db, principal, "event", event_id, payload.reason, payload.details))


@router.get("/api/events/{event_id}/flags", response_model=list[FlagOut])
def event_flags(
    event_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    return unwrap(services.flags_for(db, principal, "event", event_id))


@router.patch("/api/flags/{kind}/{flag_id}", response_model=FlagOut)
def update_flag_status(
    kind: FlagKind,
    flag_id: int,
    payload: FlagStatusUpdate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    return unwrap(services.transition_flag(db, principal, kind, flag_id, payload.status, payload.notes))


@router.delete("/api/flags/{kind}/{flag_id}")
def withdraw_flag(
    kind: FlagKind,
    flag_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    unwrap(services.withdraw_flag(db, principal, kind, flag_id))
    return {"status": "withdrawn"}
