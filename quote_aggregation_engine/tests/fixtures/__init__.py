from quote_aggregation_engine.tests.fixtures.aiohttp_session import *  # noqa: F401, F403
from quote_aggregation_engine.tests.fixtures.providers_clients import *  # noqa: F401, F403
from quote_aggregation_engine.tests.fixtures.swap_requests import *  # noqa: F401, F403
