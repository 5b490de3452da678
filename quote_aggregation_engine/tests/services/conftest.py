import pytest

from quote_aggregation_engine.providers import ProviderRegistry, build_provider_registry
from quote_aggregation_engine.services.meta_aggregation_service import (
    MetaAggregationService,
)


@pytest.fixture
def provider_registry(aiohttp_session, config, apm_client, providers) -> ProviderRegistry:
    return build_provider_registry(
        session=aiohttp_session,
        config=config,
        apm_client=apm_client,
        providers_config=providers,
    )


@pytest.fixture
def make_service(config, providers, apm_client, aiohttp_session):
    """Builds the service around the given adapters."""

    def _make(*adapters) -> MetaAggregationService:
        return MetaAggregationService(
            config=config,
            providers=providers,
            session=aiohttp_session,
            apm_client=apm_client,
            provider_registry=ProviderRegistry(*adapters),
        )

    return _make
