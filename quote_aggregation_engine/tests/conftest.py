import pytest
from starlette.testclient import TestClient

from quote_aggregation_engine.clients.apm_client import ApmClient
from quote_aggregation_engine.config import config as config_
from quote_aggregation_engine.config.providers import ProvidersConfig
from quote_aggregation_engine.rest_api.create_app import create_app
from quote_aggregation_engine.tests.fixtures import *  # noqa: F401, F403


@pytest.fixture()
def config():
    return config_


@pytest.fixture()
def providers():
    return ProvidersConfig()


@pytest.fixture()
def apm_client(config):
    return ApmClient(config)


@pytest.fixture()
def trading_client(config) -> TestClient:
    app = create_app(config=config)
    # entering the client runs the startup event which registers the dependencies
    with TestClient(app) as client:
        yield client
