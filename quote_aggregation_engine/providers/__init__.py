from typing import Iterator, TypeVar, Union

import aiohttp

from quote_aggregation_engine.clients.apm_client import ApmClient
from quote_aggregation_engine.config import Config
from quote_aggregation_engine.config.providers import ProvidersConfig
from quote_aggregation_engine.models.chain import ProviderKind
from quote_aggregation_engine.providers.base_provider import BaseProvider, ProviderAdapter
from quote_aggregation_engine.providers.kyberswap_v1.kyberswap_provider_v1 import KyberSwapProviderV1
from quote_aggregation_engine.providers.lifi_v1.lifi_provider_v1 import LiFiProviderV1
from quote_aggregation_engine.providers.odos_v2.odos_provider_v2 import OdosProviderV2
from quote_aggregation_engine.providers.wrappers import OffchainSignatureProvider, UnimplementedProvider
from quote_aggregation_engine.providers.zerox_v1.zerox_provider import ZeroXProviderV1
from quote_aggregation_engine.utils.logger import get_logger

T = TypeVar("T")

logger = get_logger(__name__)

HTTP_PROVIDERS: dict[str, type[BaseProvider]] = {
    provider_class.PROVIDER_NAME: provider_class
    for provider_class in (
        KyberSwapProviderV1,
        LiFiProviderV1,
        OdosProviderV2,
        ZeroXProviderV1,
    )
}


class ProviderRegistry:
    def __init__(self, *providers: ProviderAdapter):
        self.provider_by_name = {
            provider.PROVIDER_NAME: provider for provider in providers
        }

    def __getitem__(self, provider_name: str) -> ProviderAdapter:
        return self.provider_by_name[provider_name]

    def __contains__(self, provider_name: str) -> bool:
        return provider_name in self.provider_by_name

    def __iter__(self) -> Iterator[str]:
        return iter(self.provider_by_name)

    def __len__(self) -> int:
        return len(self.provider_by_name)

    def get(self, provider_name: str, default: T = None) -> Union[ProviderAdapter, T]:
        return self.provider_by_name.get(provider_name, default)

    @property
    def names(self) -> list[str]:
        return list(self.provider_by_name)


def build_provider_registry(
    session: aiohttp.ClientSession,
    config: Config,
    apm_client: ApmClient,
    providers_config: ProvidersConfig,
) -> ProviderRegistry:
    """
    Instantiates one adapter per enabled provider config.

    HTTP providers need an adapter class registered under their name, the
    other kinds are wrapped by their config alone.
    """
    adapters = []
    for name, provider_config in providers_config.items():
        if provider_config.kind == ProviderKind.UNIMPLEMENTED:
            adapters.append(UnimplementedProvider(provider_config))
        elif provider_config.kind == ProviderKind.OFFCHAIN_SIGNATURE:
            adapters.append(OffchainSignatureProvider(provider_config))
        elif name in HTTP_PROVIDERS:
            adapters.append(
                HTTP_PROVIDERS[name](
                    session=session,
                    config=config,
                    apm_client=apm_client,
                    provider_config=provider_config,
                )
            )
        else:
            logger.warning('No adapter registered for provider %s, skipped', name)
    return ProviderRegistry(*adapters)
