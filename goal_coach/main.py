import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .config import get_settings
from .errors import CoachActionError
from .logging_config import configure_logging
from .routers.coach import router as coach_router
from .routers.goals import router as goals_router

configure_logging(get_settings().log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="Goal Coach Service", version="0.1.0")


@app.exception_handler(CoachActionError)
async def coach_action_error_handler(request: Request, exc: CoachActionError) -> JSONResponse:
    logger.info("%s %s -> %s: %s", request.method, request.url.path, exc.kind, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


app.include_router(goals_router)
app.include_router(coach_router)
