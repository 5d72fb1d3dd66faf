from fastapi import APIRouter, Request
from sqlalchemy import text

router = APIRouter()


@router.get("/api/health")
async def health_check(request: Request) -> dict:
    """Return liveness status of the API, database, and Redis."""
    db_ok = False
    redis_ok = False

    try:
        async with request.app.state.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        db_ok = True
    except Exception:
        pass

    try:
        await request.app.state.redis.ping()
        redis_ok = True
    except Exception:
        pass

    status = "ok" if (db_ok and redis_ok) else "degraded"
    return {"status": status, "db": db_ok, "redis": redis_ok}
