# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2026 Manifold Contributors

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.exc import DBAPIError, IntegrityError, InterfaceError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine

from manifold.config import Settings
from manifold.errors import ConflictError, PersistenceUnavailableError

logger = logging.getLogger(__name__)


def build_engine(settings: Settings) -> AsyncEngine:
    """Create the async database engine described by ``settings``."""
    if settings.database_url.startswith("sqlite"):
        return create_async_engine(settings.database_url)
    return create_async_engine(
        settings.database_url,
        pool_size=settings.database_pool_size,
        max_overflow=10,
        pool_timeout=30,
        pool_pre_ping=True,
    )


@asynccontextmanager
async def unit_of_work(engine: AsyncEngine) -> AsyncIterator[AsyncConnection]:
    """One transaction per top-level operation.

    Everything inside commits together or rolls back together. Storage
    errors leave as ConflictError or PersistenceUnavailableError.
    """
    try:
        async with engine.begin() as conn:
            yield conn
    except IntegrityError as exc:
        logger.info("Integrity violation: %s", exc.orig)
        raise ConflictError("The change conflicts with existing data (unique or reference constraint)") from exc
    except (OperationalError, InterfaceError, PoolTimeoutError, OSError) as exc:
        logger.warning("Storage unavailable: %s", exc)
        raise PersistenceUnavailableError("Storage is unavailable, retry the request later") from exc
    except DBAPIError as exc:
        if exc.connection_invalidated:
            logger.warning("Storage connection lost: %s", exc)
            raise PersistenceUnavailableError("Storage connection lost, retry the request later") from exc
        raise
