from unittest.mock import AsyncMock

import pytest

from quote_aggregation_engine.rest_api.dependencies import build_dependencies


@pytest.mark.asyncio()
async def test_build_dependencies(config, apm_client, providers, aiohttp_session):
    deps = build_dependencies(config, apm_client, providers=providers, session=aiohttp_session)

    assert deps.provider_registry.names == list(providers)
    assert deps.meta_aggregation_service.provider_registry is deps.provider_registry
    assert deps.meta_aggregation_service.session is aiohttp_session
    assert deps.providers is providers

    aiohttp_session.close = AsyncMock()
    await deps.close()
    aiohttp_session.close.assert_awaited_once()
