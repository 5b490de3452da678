import uvicorn
from fastapi import FastAPI

from quote_aggregation_engine.config import config
from quote_aggregation_engine.rest_api.create_app import create_app


def build_app() -> FastAPI:
    """Application factory, called by every uvicorn worker."""
    return create_app(config)


def main() -> None:
    uvicorn.run(
        'quote_aggregation_engine.__main__:build_app',
        factory=True,
        host=config.SERVER_HOST,
        port=config.SERVER_PORT,
        workers=config.WORKERS_COUNT,
        # reload watches the source tree and only runs a single worker
        reload=config.RELOAD and config.WORKERS_COUNT == 1,
        log_level=config.LOGGING_LEVEL.lower(),
    )


if __name__ == '__main__':
    main()
