import os
from collections import defaultdict
from pathlib import Path
from typing import Iterator, Optional

import ujson
from pydantic_settings import BaseSettings, SettingsConfigDict

from quote_aggregation_engine.models.chain import (
    ChainProvidersModel,
    ProviderConfigModel,
    ProviderInfoModel,
    ProviderKind,
    SpenderModel,
)

PROVIDERS_ROOT = Path(__file__).parent.parent / 'providers'


class ProviderCredentials(BaseSettings):
    """Per-provider environment overrides, read as `<NAME>_API_KEY` and so on."""

    API_KEY: Optional[str] = None
    API_BASE_URL: Optional[str] = None
    INTEGRATOR: Optional[str] = None
    REFERRER: Optional[str] = None
    FEE_BPS: Optional[int] = None

    model_config = SettingsConfigDict(env_file='.env', extra='ignore')


def load_provider_config(path: Path) -> ProviderConfigModel:
    with open(path) as f:
        raw = ujson.load(f)
    env_prefix = f'{raw["name"].upper()}_'
    credentials = ProviderCredentials(_env_prefix=env_prefix)
    overrides = {
        'api_key': credentials.API_KEY,
        'api_root': credentials.API_BASE_URL,
        'integrator': credentials.INTEGRATOR,
        'referrer': credentials.REFERRER,
        'fee_bps': credentials.FEE_BPS,
    }
    raw.update({key: value for key, value in overrides.items() if value is not None})
    return ProviderConfigModel.model_validate(raw)


class ProvidersConfig:
    """Enabled providers found in `providers/*/config.json`, keyed by name."""

    def __init__(self, root: Path = PROVIDERS_ROOT) -> None:
        self._providers: dict[str, ProviderConfigModel] = {}
        for path, _, files in sorted(os.walk(root)):
            for file in files:
                if 'config.json' != file:
                    continue
                provider_config = load_provider_config(Path(path, file))
                if not provider_config.enabled:
                    continue
                self._providers[provider_config.name] = provider_config

    def __iter__(self) -> Iterator[str]:
        return iter(self._providers)

    def __contains__(self, name: str) -> bool:
        return name in self._providers

    def __getitem__(self, name: str) -> ProviderConfigModel:
        return self._providers[name]

    def items(self):
        return self._providers.items()

    def keys(self):
        return self._providers.keys()

    def values(self):
        return self._providers.values()

    def get(self, name: str) -> Optional[ProviderConfigModel]:
        return self._providers.get(name)

    def get_providers_on_chain(
        self, chain_id: int, kind: Optional[ProviderKind] = None
    ) -> ChainProvidersModel:
        providers_on_chain = []
        for provider in self.values():
            spender = provider.get_spender(chain_id)
            if spender and kind in (None, provider.kind):
                providers_on_chain.append(provider_info(provider, spender))
        if not providers_on_chain:
            raise ValueError(f'Chain ID {chain_id} not found')
        return ChainProvidersModel(chain_id=chain_id, providers=providers_on_chain)

    def get_all_providers(self, kind: Optional[ProviderKind] = None) -> list[ChainProvidersModel]:
        provider_on_chains = defaultdict(list)
        for provider in self.values():
            if kind not in (None, provider.kind):
                continue
            for spender in provider.spenders:
                provider_on_chains[spender.chain_id].append(provider_info(provider, spender))
        return [
            ChainProvidersModel(chain_id=chain_id, providers=providers_)
            for chain_id, providers_ in sorted(provider_on_chains.items())
        ]


def provider_info(provider: ProviderConfigModel, spender: SpenderModel) -> ProviderInfoModel:
    return ProviderInfoModel(
        display_name=provider.display_name,
        name=provider.name,
        kind=provider.kind,
        supports_contract_calls=provider.supports_contract_calls,
        router=spender.router,
        approval=spender.approval or spender.router,
    )
