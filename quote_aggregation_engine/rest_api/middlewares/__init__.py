from quote_aggregation_engine.rest_api.middlewares.route_logger import RouteLoggerMiddleware  # noqa: F401
