from typing import Optional

import aiohttp
import fastapi
from pydantic import BaseModel, ConfigDict

from quote_aggregation_engine.clients.apm_client import ApmClient
from quote_aggregation_engine.config import Config
from quote_aggregation_engine.config.providers import ProvidersConfig
from quote_aggregation_engine.providers import ProviderRegistry, build_provider_registry
from quote_aggregation_engine.services.meta_aggregation_service import (
    MetaAggregationService,
)


class Dependencies(BaseModel):
    """
    Objects shared by all requests for the lifetime of the application.

    Built once on startup, since the aiohttp session must be bound to the
    running event loop, and stored in ``app.state``.
    """

    aiohttp_session: aiohttp.ClientSession
    apm_client: ApmClient
    config: Config
    providers: ProvidersConfig
    provider_registry: ProviderRegistry
    meta_aggregation_service: MetaAggregationService

    model_config = ConfigDict(arbitrary_types_allowed=True, extra='forbid', frozen=True)

    def register(self, app: fastapi.FastAPI):
        app.state.dependencies = self

    async def close(self):
        await self.aiohttp_session.close()


def build_dependencies(
    config: Config,
    apm_client: ApmClient,
    providers: Optional[ProvidersConfig] = None,
    session: Optional[aiohttp.ClientSession] = None,
) -> Dependencies:
    """Wires the provider adapters and the aggregation service around one HTTP session."""
    providers = providers or ProvidersConfig()
    session = session or aiohttp.ClientSession(trust_env=True)
    provider_registry = build_provider_registry(
        session=session,
        config=config,
        apm_client=apm_client,
        providers_config=providers,
    )
    meta_aggregation_service = MetaAggregationService(
        config=config,
        providers=providers,
        session=session,
        apm_client=apm_client,
        provider_registry=provider_registry,
    )
    return Dependencies(
        aiohttp_session=session,
        apm_client=apm_client,
        config=config,
        providers=providers,
        provider_registry=provider_registry,
        meta_aggregation_service=meta_aggregation_service,
    )


def _get(request: fastapi.Request) -> Dependencies:
    return request.app.state.dependencies


def config(request: fastapi.Request) -> Config:
    return _get(request).config


def meta_aggregation_service(request: fastapi.Request) -> MetaAggregationService:
    return _get(request).meta_aggregation_service


def providers(request: fastapi.Request) -> ProvidersConfig:
    return _get(request).providers


def provider_registry(request: fastapi.Request) -> ProviderRegistry:
    return _get(request).provider_registry
