from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from .. import services
from ..deps import get_db, get_principal, unwrap
from ..roles import Principal
from ..schemas import EventCreate, EventOut

router = APIRouter()


@router.post("/api/events", response_model=EventOut, status_code=201)
def create_event(
    payload: EventCreate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    data = payload.model_dump(exclude={"club_id", "title", "event_date"})
    return unwrap(
        services.create_event(db, principal, payload.club_id, payload.title, payload.event_date, **data)
    )


@router.delete("/api/events/{event_id}")
def delete_event(
    event_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
):
    unwrap(services.delete_event(db, principal, event_id))
    return {"status": "deleted"}
