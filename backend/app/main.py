import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.routes import constraints, health, scheduling, sessions, snapshots, students
from app.core.config import get_settings
from app.core.exceptions import AppError

logger = logging.getLogger(__name__)

settings = get_settings()


async def app_error_handler(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": exc.message, "details": exc.details},
    )


app = FastAPI(title=settings.project_name)
app.add_exception_handler(AppError, app_error_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router, prefix=settings.api_prefix, tags=["health"])
app.include_router(scheduling.router, prefix=settings.api_prefix, tags=["scheduling"])
app.include_router(constraints.router, prefix=settings.api_prefix, tags=["constraints"])
app.include_router(sessions.router, prefix=settings.api_prefix, tags=["sessions"])
app.include_router(students.router, prefix=settings.api_prefix, tags=["students"])
app.include_router(snapshots.router, prefix=settings.api_prefix, tags=["snapshots"])
