import time
from typing import Callable, Iterable

from fastapi import FastAPI, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from quote_aggregation_engine.utils.logger import get_logger, set_correlation_id, set_session_id

logger = get_logger(__name__)

REQUEST_ID_HEADER = 'x-request-id'
SESSION_ID_HEADER = 'x-session-id'
CF_RAY_HEADER = 'cf-ray'


class RouteLoggerMiddleware(BaseHTTPMiddleware):
    """
    Logs one line per API call and binds the correlation keys to its context.

    The request id comes from ``x-request-id``, then ``cf-ray``, and is
    generated otherwise. It is echoed back in the response headers.
    """

    def __init__(self, app: FastAPI, *, skip_paths: Iterable[str] = ('/health_check',)):
        super().__init__(app)
        self.skip_paths = tuple(skip_paths)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = set_correlation_id(
            request.headers.get(REQUEST_ID_HEADER) or request.headers.get(CF_RAY_HEADER)
        )
        if SESSION_ID_HEADER in request.headers:
            set_session_id(request.headers[SESSION_ID_HEADER])

        if request.url.path.startswith(self.skip_paths):
            return await call_next(request)

        log_args = {
            'request_method': request.method,
            'request_path': request.url.path,
        }
        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            logger.exception('Request %s %s raised', request.method, request.url.path,
                             extra={**log_args, 'response_status': 500})
            raise

        response.headers[REQUEST_ID_HEADER] = request_id
        log_args.update(
            request_duration=round(time.perf_counter() - started, 4),
            response_status=response.status_code,
        )
        if response.status_code >= 500:
            logger.warning('Request failed', extra=log_args)
        else:
            logger.info('Request served', extra=log_args)
        return response
