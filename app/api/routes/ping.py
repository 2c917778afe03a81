from fastapi import APIRouter, HTTPException, Request

from app.dependencies.auth import CurrentUser

router = APIRouter(prefix="/ping", tags=["health"])


@router.get("", summary="Public health probe")
async def ping() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/db", summary="Database connectivity probe")
async def ping_database(request: Request, user: CurrentUser) -> dict[str, str]:
    database = getattr(request.app.state, "database", None)
    if database is None:
        raise HTTPException(status_code=503, detail="Database is not configured")
    await database.test_connection()
    return {"status": "ok", "user": user.user_id}
