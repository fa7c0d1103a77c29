import logging
from contextlib import asynccontextmanager
from os import environ
from typing import Annotated

from fastapi import Depends, FastAPI

from app.api import auth, bookmark
from app.db import BackendClient
from app.dependencies import get_current_user
from app.models.user import Identity
from app.schemas.responses import HealthCheckResponseSchema
from app.services.auth import AuthService
from app.services.page import PageRegistry
from app.services.realtime import ChangeFeed

logging.basicConfig(
    level=environ.get("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    client = BackendClient()
    feed = ChangeFeed()
    auth_service = AuthService(client)
    app.state.client = client
    app.state.feed = feed
    app.state.auth = auth_service
    app.state.registry = PageRegistry(client, auth_service, feed)
    yield
    app.state.registry.close()
    await client.close()


app = FastAPI(lifespan=lifespan)
app.include_router(auth.router)
app.include_router(bookmark.router)


@app.get("/api/health", response_model=HealthCheckResponseSchema)
async def health_check() -> HealthCheckResponseSchema:
    return HealthCheckResponseSchema(success=True)


@app.get("/api/me", response_model=Identity)
async def get_current_user_profile(
    current_user: Annotated[Identity, Depends(get_current_user)],
) -> Identity:
    """Get the signed-in identity.

    This is a protected endpoint that requires an active session.

    Args:
        current_user: Injected by the auth dependency

    Returns:
        The identity of the calling session
    """
    return current_user
