"""
Dependency Injection Container
Owns the store handle and wires the backfill services
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterator

import structlog
from dependency_injector import containers, providers
from sqlalchemy import Engine

from .config import Settings, settings
from .db.engine import make_engine
from .repositories.quote import QuoteRepository
from .services.coordinator import BackfillCoordinator
from .services.market import CryptoCompareClient


def configure_logging(level: str = "INFO") -> None:
    """Configure structured logging"""
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level.upper(), logging.INFO),
        force=True,
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def init_engine(db_path: str) -> Iterator[Engine]:
    """Open the store once and release it on shutdown"""
    engine = make_engine(db_path)
    # Fail at startup if the database file cannot be opened
    with engine.connect():
        pass
    try:
        yield engine
    finally:
        engine.dispose()


class ApplicationContainer(containers.DeclarativeContainer):
    """Main DI container for the backfill"""

    # Configuration
    app_settings = providers.Object(settings)
    config = providers.Configuration()

    # Logging
    logging_setup = providers.Resource(configure_logging, level=config.log_level)

    # Core Infrastructure
    db_engine: providers.Provider[Engine] = providers.Resource(
        init_engine,
        db_path=config.db_path,
    )

    # Repositories
    quote_repository = providers.Singleton(
        QuoteRepository,
        engine=db_engine,
        logger=providers.Factory(structlog.get_logger, "quote_repository"),
    )

    # Services
    market_client = providers.Factory(
        CryptoCompareClient,
        logger=providers.Factory(structlog.get_logger, "market"),
    )

    coordinator = providers.Factory(
        BackfillCoordinator,
        config=app_settings,
        repository=quote_repository,
        fetcher_factory=market_client.provider,
        logger=providers.Factory(structlog.get_logger, "backfill"),
    )


def build_container(app_settings: Settings | None = None) -> ApplicationContainer:
    """Create a container bound to ``app_settings`` (module settings by default)"""
    app_settings = app_settings or settings
    container = ApplicationContainer()
    container.app_settings.override(providers.Object(app_settings))
    container.config.from_dict(app_settings.model_dump())
    return container
