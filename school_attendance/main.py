from datetime import datetime, timezone

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from school_attendance.api.v1.attendance.router import router as attendance_router
from school_attendance.api.v1.auth.router import router as auth_router
from school_attendance.api.v1.classes.router import router as classes_router
from school_attendance.api.v1.dashboard.router import router as dashboard_router
from school_attendance.api.v1.leaves.router import router as leaves_router
from school_attendance.api.v1.schedules.router import router as schedules_router
from school_attendance.api.v1.subjects.router import router as subjects_router
from school_attendance.api.v1.users.router import router as users_router
from school_attendance.core.config import settings
from school_attendance.core.logging import setup_logging


def create_app() -> FastAPI:
    setup_logging(settings.log_level, use_json=settings.log_json)

    app = FastAPI(title="School Attendance")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routers
    app.include_router(auth_router)
    app.include_router(users_router)
    app.include_router(classes_router)
    app.include_router(subjects_router)
    app.include_router(schedules_router)
    app.include_router(attendance_router)
    app.include_router(leaves_router)
    app.include_router(dashboard_router)

    @app.get("/health-check", tags=["health"])
    async def health_check():
        return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}

    return app


app = create_app()
