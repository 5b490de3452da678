from contextvars import ContextVar
from functools import lru_cache
from logging import LoggerAdapter, getLogger
from logging.config import dictConfig
from typing import TYPE_CHECKING, Optional, Tuple
from uuid import uuid4

from quote_aggregation_engine.config import LoggerConfig, config

if TYPE_CHECKING:
    from quote_aggregation_engine.clients.apm_client import ApmClient

# Keyword argument of Logger._log
EXTRA = 'extra'

correlation_id: ContextVar[Optional[str]] = ContextVar('cid', default=None)
session_id: ContextVar[Optional[str]] = ContextVar('sid', default=None)
# set inside the task running one provider call
provider_context: ContextVar[Optional[str]] = ContextVar('aggregation_provider', default=None)


class LogArgs:
    cid = 'cid'  # request correlation key
    sid = 'sid'  # session correlation key
    chain_id = 'chain_id'
    request = 'request'  # one-line swap request summary
    providers = 'providers'  # provider names attempted in a call
    aggregation_provider = 'aggregation_provider'  # quote provider name
    phase = 'phase'  # provider call phase: quote, build, status
    latency_ms = 'latency_ms'
    expiry_ms = 'expiry_ms'
    candidates_count = 'candidates_count'
    performances = 'performances'  # compact summary of the ranked routes
    ex = 'ex'  # human readable exception description


def build_logging_config(settings: LoggerConfig) -> dict:
    """
    dictConfig of the engine.

    Only the handlers named in LOG_HANDLERS are declared, so the logstash
    queue is not started when logs go to the console only.
    """
    handlers = {
        'console': {
            'class': 'logging.StreamHandler',
            'level': settings.LOGGING_LEVEL,
            'formatter': 'plain',
            'stream': 'ext://sys.stdout',
        },
        'logstash': {
            'class': 'logstash_async.handler.AsynchronousLogstashHandler',
            'transport': 'logstash_async.transport.TcpTransport',
            'level': settings.LOGSTASH_LOGGING_LEVEL,
            'formatter': 'logstash',
            'host': settings.LOGSTASH_HOST,
            'port': settings.LOGSTASH_PORT,
            'database_path': settings.LOGSTASH_DATABASE_PATH,
            'event_ttl': settings.LOGSTASH_EVENT_TTL,
        },
    }
    unknown = set(settings.LOG_HANDLERS) - set(handlers)
    if unknown:
        raise ValueError(f'Unknown log handlers: {", ".join(sorted(unknown))}')
    return {
        'version': 1,
        'disable_existing_loggers': False,
        'formatters': {
            'plain': {
                'format': '%(asctime)s %(levelname)s [%(name)s:%(lineno)s] %(message)s',
            },
            'logstash': {'()': 'logstash_formatter.LogstashFormatterV1'},
        },
        'handlers': {name: handlers[name] for name in settings.LOG_HANDLERS},
        'root': {
            'handlers': list(settings.LOG_HANDLERS),
            'level': settings.LOGGING_LEVEL,
        },
    }


@lru_cache(maxsize=None)
def configure_logging() -> None:
    dictConfig(build_logging_config(config))


class ContextLogger(LoggerAdapter):
    """Adds the request, session and provider keys of the current context to every record."""

    def process(self, msg, kwargs):
        extra = {**self.extra, **kwargs.get(EXTRA, {})}
        extra[LogArgs.cid] = correlation_id.get()
        sid = extra.get(LogArgs.sid) or session_id.get()
        if sid:
            extra[LogArgs.sid] = sid
        provider = provider_context.get()
        if provider:
            extra.setdefault(LogArgs.aggregation_provider, provider)
        kwargs[EXTRA] = extra
        return msg, kwargs


def get_logger(name: str, extra: Optional[dict] = None) -> ContextLogger:
    configure_logging()
    return ContextLogger(getLogger(name), extra or {})


def set_correlation_id(corr_id: Optional[str] = None) -> str:
    corr_id = corr_id or uuid4().hex
    correlation_id.set(corr_id)
    return corr_id


def set_session_id(sid: str):
    session_id.set(sid)


def capture_exception(
    apm_client: Optional['ApmClient'],
    exc_info: Optional[Tuple] = None,
    **custom,
) -> Optional[str]:
    """Reports an exception to APM.

    Args:
        apm_client: application APM client, nothing is reported when it is missing
        exc_info: (type, value, traceback) of the error, taken from sys.exc_info()
            when called without it inside an except block
        custom: context attached to the event, e.g. provider name and phase
    """
    if not apm_client:
        return None
    return apm_client.capture_exception(exc_info, **custom)
