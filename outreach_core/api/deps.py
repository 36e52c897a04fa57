"""API dependencies for dependency injection."""

import secrets
from typing import Annotated, Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session, sessionmaker

from outreach_core.config import Settings, get_settings
from outreach_core.infra.db import get_sync_session_factory
from outreach_core.infrastructure.broadcast import Broadcaster
from outreach_core.infrastructure.broadcast import get_broadcaster as get_process_broadcaster


def get_db() -> Session:
    """Get a database session."""
    session_factory = get_sync_session_factory()
    session = session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def get_session_factory() -> sessionmaker[Session]:
    """Get the session factory used for per-attempt webhook transactions."""
    return get_sync_session_factory()


def get_app_settings() -> Settings:
    """Get application settings."""
    return get_settings()


def get_broadcaster(
    settings: Annotated[Settings, Depends(get_app_settings)],
) -> Broadcaster:
    """Get the live activity broadcaster."""
    return get_process_broadcaster(settings)


def require_operator(
    settings: Annotated[Settings, Depends(get_app_settings)],
    x_operator_key: Annotated[Optional[str], Header()] = None,
) -> None:
    """Check the operator key when one is configured.

    Raises:
        HTTPException: If a key is configured and the request's key differs.
    """
    expected = settings.operator_api_key
    if not expected:
        return
    if not x_operator_key or not secrets.compare_digest(x_operator_key, expected):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid operator key",
        )


# Type aliases for cleaner route signatures
DBSession = Annotated[Session, Depends(get_db)]
SessionFactory = Annotated[sessionmaker[Session], Depends(get_session_factory)]
AppSettings = Annotated[Settings, Depends(get_app_settings)]
BroadcasterDep = Annotated[Broadcaster, Depends(get_broadcaster)]
OperatorAccess = Depends(require_operator)
