"""Primary API router definition."""

from fastapi import APIRouter

from . import accounts, pos, renewals, tokens, vouchers

api_router = APIRouter()

api_router.include_router(pos.router)
api_router.include_router(tokens.router)
api_router.include_router(vouchers.router)
api_router.include_router(accounts.router)
api_router.include_router(renewals.router)


@api_router.get("/health", tags=["health"])
async def healthcheck() -> dict[str, str]:
    """Basic health check endpoint."""
    return {"status": "ok"}
