# src/itorero/app.py
import logging
import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.itorero.config import settings
from src.itorero.middleware.security_headers import security_headers_middleware
from src.itorero.utils.database import AsyncSessionLocal, init_models
from src.itorero.utils.error_handler import register_exception_handlers
from src.itorero.utils.rate_limit import build_rate_limit_store

from src.itorero.routes.auth_api import auth_api
from src.itorero.routes import (
    activities_api,
    attendance_api,
    audit_api,
    chat_api,
    cultural_content_api,
    health_api,
    media_api,
    notifications_api,
    reports_api,
    users_api,
)
from src.itorero.routes.hierarchy_api import (
    cells_router,
    districts_router,
    intore_groups_router,
    sectors_router,
)

logger = logging.getLogger(__name__)

app = FastAPI(title=settings.APP_NAME, version=settings.APP_VERSION)

# ----------------------------------------------------------
# SHARED STATE
# ----------------------------------------------------------
app.state.session_factory = AsyncSessionLocal
app.state.rate_limit_store = build_rate_limit_store()

# ----------------------------------------------------------
# CORS & SECURITY HEADERS
# ----------------------------------------------------------
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.middleware("http")(security_headers_middleware)

# ----------------------------------------------------------
# CUSTOM ERROR HANDLERS
# ----------------------------------------------------------
register_exception_handlers(app)

# ----------------------------------------------------------
# ROUTERS
# ----------------------------------------------------------
app.include_router(health_api.router)
app.include_router(auth_api)
app.include_router(users_api.router)
app.include_router(districts_router)
app.include_router(sectors_router)
app.include_router(cells_router)
app.include_router(intore_groups_router)
app.include_router(activities_api.router)
app.include_router(attendance_api.router)
app.include_router(media_api.router)
app.include_router(notifications_api.router)
app.include_router(reports_api.router)
app.include_router(cultural_content_api.router)
app.include_router(chat_api.router)
app.include_router(audit_api.router)


# ----------------------------------------------------------
# STARTUP
# ----------------------------------------------------------
@app.on_event("startup")
async def create_tables() -> None:
    # local runs only; deployed databases are migrated
    if os.getenv("DB_AUTO_CREATE", "False").lower() in ("true", "1", "yes"):
        logger.info("DB_AUTO_CREATE set, creating missing tables")
        await init_models()
