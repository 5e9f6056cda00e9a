from typing import Literal

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from .. import services
from ..deps import get_db, get_principal, unwrap
from ..roles import Principal
from ..schemas import (
    ClubCreate,
    ClubOut,
    MemberRoleUpdate,
    MembershipDecision,
    MembershipOut,
)

router = APIRouter()


@router.post("/api/clubs", response_model=ClubOut, status_code=201)
def create_club(
    payload: ClubCreate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    return unwrap(services.create_club(db, principal, payload.name, payload.description))


@router.get("/api/clubs", response_model=list[ClubOut])
def list_clubs(db: Session = Depends(get_db), principal: Principal = Depends(get_principal)):
    return services.visible_clubs(db, principal)


@router.get("/api/clubs/my-admin-clubs", response_model=list[ClubOut])
def my_admin_clubs(db: Session = Depends(get_db), principal: Principal = Depends(get_principal)):
    return services.managed_clubs(db, principal)


@router.get("/api/clubs/{club_id}", response_model=ClubOut)
def get_club(
    club_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    return unwrap(services.get_club(db, principal, club_id))


@router.delete("/api/clubs/{club_id}")
def delete_club(
    club_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    unwrap(services.delete_club(db, principal, club_id))
    return {"status": "deleted"}


@router.get("/api/clubs/{club_id}/members", response_model=list[MembershipOut])
def list_members(
    club_id: int,
    status: Literal["pending", "approved", "rejected"] = "approved",
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    return unwrap(services.club_members(db, principal, club_id, status))


@router.post("/api/clubs/{club_id}/membership", response_model=MembershipOut, status_code=201)
def join_club(
    club_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    return unwrap(services.request_membership(db, principal, club_id))


@router.get("/api/clubs/{club_id}/membership/pending", response_model=list[MembershipOut])
def pending_membership_requests(
    club_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    return unwrap(services.pending_memberships(db, principal, club_id))


@router.delete("/api/clubs/{club_id}/membership")
def leave_club(
    club_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    unwrap(services.leave_club(db, principal, club_id))
    return {"status": "removed"}


@router.patch("/api/clubs/{club_id}/members/{user_id}", response_model=MembershipOut)
def decide_membership(
    club_id: int,
    user_id: int,
    payload: MembershipDecision,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    approve = payload.action == "approve"
    return unwrap(services.decide_membership(db, principal, club_id, user_id, approve))


@router.put("/api/clubs/{club_id}/members/{user_id}/role", response_model=MembershipOut)
def change_member_role(
    club_id: int,
    user_id: int,
    payload: MemberRoleUpdate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    return unwrap(services.change_member_role(db, principal, club_id, user_id, payload.role))


@router.delete("/api/clubs/{club_id}/members/{user_id}")
def remove_member(
    club_id: int,
    user_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    unwrap(services.remove_member(db, principal, club_id, user_id))
    return {"status": "removed"}
