import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.v1.api import api_router
from app.config import CORS_ORIGINS
from app.database import engine, Base
from app.exceptions import PlacementError
from app.logging_config import configure_logging
from app.models import PlacementDrive, PlacementRound, StudentRoundProgress, RoundProgressEntry  # noqa: F401

configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Placement Rounds",
    description="Round-by-round progression of students through company placement drives",
    version="1.0.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(PlacementError)
async def placement_error_handler(request: Request, exc: PlacementError):
    """Render service-layer errors with the same body shape as HTTPException."""
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    else:
        logger.warning("%s %s rejected (%s): %s", request.method, request.url.path, exc.status_code, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.on_event("startup")
def on_startup():
    """Create database tables on startup."""
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created/verified")


app.include_router(api_router)


@app.get("/")
def health_check():
    return {"status": "ok"}
