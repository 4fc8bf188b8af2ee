"""
Process startup for applications embedding the translator.

Call once before creating engines: configures structlog (DEBUG forces debug
level) and, when enabled, exposes the Prometheus registry over HTTP.

Usage:
    >>> from line_translator.bootstrap import bootstrap
    >>> bootstrap()
    >>> engine = TranslationEngine.from_settings(Language(target="French"))
"""

import structlog
from prometheus_client import start_http_server

from line_translator.config import Settings, settings as default_settings
from line_translator.logging_config import configure_logging


def bootstrap(app_settings: Settings = default_settings) -> None:
    log_level = "DEBUG" if app_settings.DEBUG else app_settings.LOG_LEVEL
    configure_logging(log_level, app_settings.ENVIRONMENT)
    logger = structlog.get_logger(__name__)

    if app_settings.PROMETHEUS_ENABLED and app_settings.METRICS_PORT:
        start_http_server(app_settings.METRICS_PORT)
        logger.info("Metrics endpoint started", port=app_settings.METRICS_PORT)

    logger.info(
        "Line translator ready",
        app=app_settings.APP_NAME,
        version=app_settings.APP_VERSION,
        environment=app_settings.ENVIRONMENT,
        model=app_settings.OPENAI_MODEL,
        base_url=app_settings.OPENAI_BASE_URL,
        metrics=app_settings.PROMETHEUS_ENABLED,
    )
