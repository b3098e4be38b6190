"""
Application monitoring and error tracking with Sentry
"""
import logging

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration
from sentry_sdk.integrations.asyncio import AsyncioIntegration

from config import settings

logger = logging.getLogger(__name__)


def init_sentry() -> bool:
    """
    Initialize Sentry for error tracking when SENTRY_DSN is set
    """
    if not settings.SENTRY_DSN:
        return False

    environment = settings.SENTRY_ENVIRONMENT or settings.ENVIRONMENT
    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=environment,
        integrations=[
            FastApiIntegration(),
            SqlalchemyIntegration(),
            AsyncioIntegration(),
        ],
        traces_sample_rate=1.0 if environment == "development" else 0.1,
        release=settings.APP_VERSION,
        # Clinical data never leaves the server
        send_default_pii=False,
    )
    logger.info(f"Sentry initialised for environment {environment}")
    return True
