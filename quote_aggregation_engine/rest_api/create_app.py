from elasticapm.contrib.starlette import ElasticAPM
from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from quote_aggregation_engine.clients.apm_client import ApmClient
from quote_aggregation_engine.config import Config
from quote_aggregation_engine.providers import ProviderRegistry
from quote_aggregation_engine.rest_api import dependencies
from quote_aggregation_engine.rest_api.middlewares import RouteLoggerMiddleware
from quote_aggregation_engine.rest_api.routes.info import info_route
from quote_aggregation_engine.rest_api.routes.routes import routes_route
from quote_aggregation_engine.rest_api.routes.status import status_route
from quote_aggregation_engine.utils.errors import BaseAggregationError
from quote_aggregation_engine.utils.logger import capture_exception, correlation_id, get_logger

logger = get_logger(__name__)

ROUTERS = (
    (routes_route, '/v1/routes', 'Routes'),
    (status_route, '/v1/status', 'Status'),
    (info_route, '/v1/info', 'Info'),
)


def create_app(config: Config) -> FastAPI:
    app = FastAPI(
        title='Quote Aggregation Engine',
        description=(
            """Fetches swap routes from many quote providers concurrently, normalizes their estimates
            and returns the routes ranked by exchange rate. Providers that fail or do not answer
            in time are left out of the result."""
        ),
        version=config.VERSION,
        docs_url='/',
        redoc_url='/docs',
    )
    apm_client = ApmClient(config)

    for router, prefix, tag in ROUTERS:
        app.include_router(router, prefix=prefix, tags=[tag])
    register_middlewares(app, config, apm_client)
    register_exception_handlers(app, config, apm_client)

    @app.on_event('startup')
    async def startup_event():
        deps = dependencies.build_dependencies(config, apm_client)
        deps.register(app)
        logger.info('Registered providers: %s', ', '.join(deps.provider_registry.names))

    @app.on_event('shutdown')
    async def shutdown_event():
        await app.state.dependencies.close()

    @app.get('/health_check', include_in_schema=False)
    def health_check(
        provider_registry: ProviderRegistry = Depends(dependencies.provider_registry),
    ):
        """Reports the registered providers; an empty registry answers 503."""
        healthy = len(provider_registry) > 0
        return JSONResponse(
            {'status': 'OK' if healthy else 'NO_PROVIDERS', 'providers': provider_registry.names},
            status_code=200 if healthy else 503,
        )

    return app


def register_middlewares(app: FastAPI, config: Config, apm_client: ApmClient):
    # the last added middleware runs first
    app.add_middleware(RouteLoggerMiddleware)
    app.add_middleware(GZipMiddleware, minimum_size=1000)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=config.CORS_CREDENTIALS,
        allow_methods=config.CORS_METHODS,
        allow_headers=config.CORS_HEADERS,
    )
    if apm_client.enabled:
        app.add_middleware(ElasticAPM, client=apm_client.client)


def register_exception_handlers(app: FastAPI, config: Config, apm_client: ApmClient):
    @app.exception_handler(BaseAggregationError)
    async def handle_aggregation_error(request: Request, exc: BaseAggregationError):
        return exc.to_http_exception()

    @app.exception_handler(ValidationError)
    async def handle_validation_error(request: Request, exc: ValidationError):
        return JSONResponse({'message': exc.errors(include_url=False)}, status_code=422)

    # Problem details of RFC 7807 for unexpected errors
    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        capture_exception(apm_client, (type(exc), exc, exc.__traceback__), path=request.url.path)
        problem = {
            'type': 'about:blank',
            'title': 'Internal Server Error',
            'status': 500,
            'detail': f'{exc.__class__.__name__} when executing {request.method} request',
            'instance': f'{config.SERVER_HOST}{request.url.path}',
            'request_id': correlation_id.get(),
        }
        logger.error('Unexpected %r at %s', exc, problem['instance'], extra=problem)
        return JSONResponse(problem, status_code=500)
