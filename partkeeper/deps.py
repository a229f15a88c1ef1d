import hmac
from typing import Optional

from fastapi import Depends, Header, HTTPException, Request, status

from .config import Settings
from .db import make_engine
from .services import Maintainer
from .targets import PostgresTarget


def build_maintainer(settings: Settings, dry_run: bool = False) -> Maintainer:
    """Wire one maintainer (engine, target, options) from explicit settings."""
    scheme = settings.to_scheme()
    engine = make_engine(
        settings.DATABASE_URL,
        statement_timeout_ms=settings.STATEMENT_TIMEOUT_MS,
        lock_timeout_ms=settings.LOCK_TIMEOUT_MS,
        connect_timeout_seconds=settings.CONNECT_TIMEOUT_SECONDS,
        sslmode=settings.DATABASE_SSLMODE,
    )
    return Maintainer(PostgresTarget(engine, scheme), settings.maintainer_options(dry_run=dry_run))


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_maintainer(request: Request) -> Maintainer:
    """The maintainer built by the app lifespan, shared by all requests."""
    return request.app.state.maintainer


def require_maintenance_token(
    x_maintenance_token: Optional[str] = Header(None),
    settings: Settings = Depends(get_settings),
) -> None:
    """
    Dependency guarding the on-demand trigger.

    Without MAINTENANCE_API_TOKEN configured the trigger is disabled.
    """
    expected = settings.MAINTENANCE_API_TOKEN
    if not expected:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="On-demand maintenance is disabled",
        )
    if not x_maintenance_token or not hmac.compare_digest(x_maintenance_token, expected):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid maintenance token",
        )
