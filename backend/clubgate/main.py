import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from . import models  # noqa: F401
from .api import admin, clubs, events, flags
from .config import CORS_ORIGIN, LOG_LEVEL
from .db import Base, engine
from .errors import NotFoundError, StorageConflict, Unauthenticated

logger = logging.getLogger(__name__)

app = FastAPI(title="Campus Clubs moderation API")

# CORS for localhost frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=[CORS_ORIGIN],
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(clubs.router)
app.include_router(events.router)
app.include_router(flags.router)
app.include_router(admin.router)


@app.on_event("startup")
def startup() -> None:
    logging.basicConfig(
        level=LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    Base.metadata.create_all(engine)
    logger.info("schema ready")


@app.get("/metrics")
def prometheus_metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.exception_handler(Unauthenticated)
def unauthenticated(request: Request, exc: Unauthenticated):
    return JSONResponse(status_code=401, content={"detail": str(exc)})


@app.exception_handler(NotFoundError)
def not_found(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(StorageConflict)
def storage_conflict(request: Request, exc: StorageConflict):
    logger.warning("conflict on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=409, content={"detail": str(exc)})
