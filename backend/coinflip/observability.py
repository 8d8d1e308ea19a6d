"""Logfire cloud observability initialization and instrumentation."""

import logging

import logfire

from coinflip import __version__
from coinflip.config import Settings

logger = logging.getLogger(__name__)


def initialize_logfire(settings: Settings, app=None, engine=None) -> None:
    """
    Initialize Logfire and instrument the settlement engine.

    Call once at process startup. Instruments:
    - FastAPI (when an app is given)
    - SQLAlchemy (when an engine is given)
    - HTTPX clients (Supabase auth / admin API)
    - Python logging (bridges to Logfire)

    Without a token, observability is disabled and stdlib logging keeps working.
    """
    if not settings.logfire_token:
        logger.warning("Logfire token not set - observability disabled")
        return

    try:
        logfire.configure(
            token=settings.logfire_token,
            service_name="coinflip",
            service_version=__version__,
            environment=settings.environment,
        )

        if app is not None:
            logfire.instrument_fastapi(app)
        if engine is not None:
            logfire.instrument_sqlalchemy(engine=engine)
        logfire.instrument_httpx()

        root_logger = logging.getLogger()
        root_logger.addHandler(logfire.LogfireLoggingHandler())

        logger.info("Logfire cloud tracking initialized")

    except Exception as e:
        logger.warning(f"Failed to initialize Logfire: {e}")
