"""
Structured logging configuration
JSON records for the API process and the sweep worker
"""
import json
import logging
import logging.config
import sys
import time
import uuid
from datetime import datetime, timezone

from devscore.core.config import settings


# Attributes present on every LogRecord; anything else came in through `extra`
_RESERVED_ATTRS = set(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}


class CustomJSONFormatter(logging.Formatter):
    """
    Custom JSON formatter for structured logging
    """

    def format(self, record: logging.LogRecord) -> str:
        log_record = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno,
            'message': record.getMessage(),
            'application': 'devscore-api',
            'environment': settings.environment,
        }

        # Structured context passed via `extra` (candidate_id, project_id, duration_ms, ...)
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and not key.startswith('_'):
                log_record[key] = value

        if record.exc_info:
            log_record['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_record, default=str)


def setup_logging(level: str | None = None) -> None:
    """
    Configure root and library loggers
    """
    level = level or settings.log_level

    logging_config = {
        'version': 1,
        'disable_existing_loggers': False,
        'formatters': {
            'json': {
                '()': CustomJSONFormatter,
            },
            'standard': {
                'format': '%(asctime)s [%(levelname)s] %(name)s: %(message)s'
            }
        },
        'handlers': {
            'console': {
                'class': 'logging.StreamHandler',
                'level': level,
                'formatter': 'json' if settings.environment == 'production' else 'standard',
                'stream': sys.stdout
            },
        },
        'loggers': {
            '': {  # Root logger
                'handlers': ['console'],
                'level': level,
                'propagate': False
            },
            'devscore': {
                'handlers': ['console'],
                'level': level,
                'propagate': False
            },
            'uvicorn': {
                'handlers': ['console'],
                'level': 'WARNING',
                'propagate': False
            },
            'sqlalchemy': {
                'handlers': ['console'],
                'level': 'WARNING',
                'propagate': False
            },
            'httpx': {
                'handlers': ['console'],
                'level': 'WARNING',
                'propagate': False
            },
        }
    }

    logging.config.dictConfig(logging_config)
    logging.getLogger('startup').info(
        "Application logging initialized",
        extra={'event': 'logging_initialized', 'log_level': level}
    )


class RequestLoggingMiddleware:
    """
    Middleware to log all HTTP requests with structured data
    """

    def __init__(self, app):
        self.app = app
        self.logger = logging.getLogger('devscore.requests')

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request_id = str(uuid.uuid4())
        start_time = time.time()
        method = scope.get("method", "")
        path = scope.get("path", "")

        self.logger.debug(
            "HTTP request started",
            extra={'request_id': request_id, 'method': method, 'path': path}
        )

        async def send_wrapper(message):
            if message["type"] == "http.response.start":
                status_code = message["status"]
                duration_ms = round((time.time() - start_time) * 1000, 2)

                log_level = logging.INFO
                if status_code >= 500:
                    log_level = logging.ERROR
                elif status_code >= 400:
                    log_level = logging.WARNING

                self.logger.log(
                    log_level,
                    "HTTP request completed",
                    extra={
                        'request_id': request_id,
                        'method': method,
                        'path': path,
                        'status_code': status_code,
                        'duration_ms': duration_ms,
                    }
                )

            await send(message)

        await self.app(scope, receive, send_wrapper)
