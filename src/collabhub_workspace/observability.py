"""Logging and Sentry setup for the workspace service."""

from __future__ import annotations

import logging
import sys
from typing import Any, cast

import sentry_sdk
import structlog
from sentry_sdk.integrations.asyncio import AsyncioIntegration
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration
from sentry_sdk.integrations.starlette import StarletteIntegration

from collabhub_workspace import __version__
from collabhub_workspace.config import settings

# Event context promoted to Sentry tags so issues can be filtered per project
TAG_KEYS = ("project_id", "watcher", "operation")

# structlog bookkeeping, not event context
RESERVED_KEYS = {"event", "level", "timestamp", "logger", "filename", "lineno"}

# Polled every few seconds by orchestrators and the watchers
QUIET_TRANSACTIONS = {"/health", "/"}

ERROR_METHODS = {"error": "error", "exception": "error", "critical": "fatal"}


def forward_to_sentry(
    _logger: Any, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """structlog processor: breadcrumb every event, capture errors.

    Debug events are skipped so watcher scan ticks do not flood the
    breadcrumb buffer.
    """
    if method_name == "debug":
        return event_dict

    message = str(event_dict.get("event", ""))
    context = {k: v for k, v in event_dict.items() if k not in RESERVED_KEYS}
    sentry_sdk.add_breadcrumb(
        category="workspace",
        message=message,
        level=event_dict.get("level", method_name),
        data=context or None,
    )

    sentry_level = ERROR_METHODS.get(method_name)
    if sentry_level is None:
        return event_dict

    with sentry_sdk.isolation_scope() as scope:
        for key in TAG_KEYS:
            if key in context:
                scope.set_tag(key, str(context[key]))
        for key, value in context.items():
            scope.set_extra(key, value)
        exc_info = event_dict.get("exc_info")
        if exc_info is True:
            exc_info = sys.exc_info()
        if isinstance(exc_info, tuple) and exc_info[1] is not None:
            scope.capture_exception(exc_info[1])
        else:
            scope.capture_message(message, level=sentry_level)
    return event_dict


def _processors(json_format: bool) -> list[Any]:
    renderer: Any = (
        structlog.processors.JSONRenderer()
        if json_format
        else structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())
    )
    return [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        forward_to_sentry,
        structlog.processors.format_exc_info,
        structlog.processors.CallsiteParameterAdder(
            [
                structlog.processors.CallsiteParameter.FILENAME,
                structlog.processors.CallsiteParameter.LINENO,
            ]
        ),
        renderer,
    ]


def configure_logging(
    service_name: str,
    log_level: str | None = None,
    json_format: bool | None = None,
) -> structlog.stdlib.BoundLogger:
    """Route stdlib logging and structlog to stdout and return the service logger.

    Call after init_sentry() so captured errors reach an initialised client.
    JSON output is used everywhere except the development environment
    unless json_format says otherwise.
    """
    level = logging.getLevelName((log_level or settings.log_level).upper())
    if json_format is None:
        json_format = settings.environment != "development"

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter("%(message)s"))
    root = logging.getLogger()
    # Replace handlers so a reload does not print every line twice
    root.handlers = [handler]
    root.setLevel(level)

    # The docker SDK logs every HTTP request to the engine at debug
    logging.getLogger("urllib3").setLevel(max(level, logging.INFO))

    structlog.configure(
        processors=_processors(json_format),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    return cast("structlog.stdlib.BoundLogger", structlog.get_logger(service_name))


def _drop_quiet_transactions(event: Any, _hint: dict[str, Any]) -> Any | None:
    if event.get("transaction") in QUIET_TRANSACTIONS:
        return None
    return event


def init_sentry(service_name: str, dsn: str | None = None) -> bool:
    """Initialise the Sentry SDK. Returns False when no DSN is configured."""
    dsn = dsn or settings.sentry_dsn
    if not dsn:
        return False

    sentry_sdk.init(
        dsn=dsn,
        environment=settings.environment,
        release=f"{service_name}@{__version__}",
        traces_sample_rate=settings.sentry_traces_sample_rate,
        integrations=[
            StarletteIntegration(transaction_style="endpoint"),
            FastApiIntegration(transaction_style="endpoint"),
            AsyncioIntegration(),
            # structlog events are forwarded by forward_to_sentry
            LoggingIntegration(level=None, event_level=None),
        ],
        before_send_transaction=_drop_quiet_transactions,
        send_default_pii=False,
    )
    sentry_sdk.set_tag("service", service_name)
    sentry_sdk.set_tag("workspace_image", settings.workspace_image)
    return True
