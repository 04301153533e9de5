"""FastAPI dependencies for dependency injection."""

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from equity_engine.database import init_db
from equity_engine.events import EventEmitter
from equity_engine.stores.auth import HeaderCapabilityAuthorizer, parse_capabilities
from equity_engine.stores.base import Actor, ApprovalAuthorizer, SofrRateSource


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Get database session dependency.

    Routes commit explicitly; anything not committed is rolled back on close.
    """
    _, factory = init_db()
    async with factory() as session:
        try:
            yield session
        finally:
            await session.close()


async def get_actor(
    x_actor_id: Annotated[str | None, Header()] = None,
    x_capabilities: Annotated[str | None, Header()] = None,
) -> Actor:
    """Build the calling actor from headers."""
    if not x_actor_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Actor-Id header is required",
        )
    return Actor(actor_id=x_actor_id, capabilities=parse_capabilities(x_capabilities))


def get_authorizer() -> ApprovalAuthorizer:
    return HeaderCapabilityAuthorizer()


def get_emitter(request: Request) -> EventEmitter:
    return request.app.state.emitter


def get_sofr_source(request: Request) -> SofrRateSource:
    return request.app.state.sofr_source


# Type aliases for cleaner dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db_session)]
CurrentActor = Annotated[Actor, Depends(get_actor)]
Authorizer = Annotated[ApprovalAuthorizer, Depends(get_authorizer)]
Emitter = Annotated[EventEmitter, Depends(get_emitter)]
SofrSource = Annotated[SofrRateSource, Depends(get_sofr_source)]
