# src/itorero/routes/health_api.py
from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.itorero.config import settings
from src.itorero.utils.database import get_db
from src.itorero.utils.responses import ok
from src.itorero.utils.timezone import now_local

router = APIRouter(prefix="/api/health", tags=["Health"])


@router.get("")
async def api_health(db: AsyncSession = Depends(get_db)):
    try:
        await db.execute(text("SELECT 1"))
        database = "up"
    except SQLAlchemyError:
        database = "down"
    return ok(
        {
            "app": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "env": settings.ENV,
            "database": database,
            "time": now_local().isoformat(),
        },
        "Server is running",
    )
