from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, conint, field_validator

from quote_aggregation_engine.utils.common import address_to_lower, is_native_address


class TokenModel(BaseModel):
    model_config = ConfigDict(frozen=True)

    chain_id: Optional[int] = None
    address: Optional[address_to_lower] = None  # empty or sentinel means native asset
    symbol: str = ''
    decimals: conint(ge=0) = 18
    name: str = ''
    price_usd: Optional[float] = None
    logo: Optional[str] = None

    @property
    def is_native(self) -> bool:
        return is_native_address(self.address)


class ProviderKind(str, Enum):
    HTTP = 'http'
    UNIMPLEMENTED = 'unimplemented'
    OFFCHAIN_SIGNATURE = 'offchain_signature'


class SpenderModel(BaseModel):
    chain_id: int
    alias: Optional[str] = None  # chain name used by the provider API
    router: Optional[address_to_lower] = None
    approval: Optional[address_to_lower] = None


class ProviderConfigModel(BaseModel):
    """Static provider data from its config.json merged with environment overrides."""

    name: str
    display_name: str
    enabled: bool = True
    kind: ProviderKind = ProviderKind.HTTP
    api_root: str
    api_key: str = ''
    integrator: Optional[str] = None
    referrer: Optional[str] = None
    fee_bps: conint(ge=0) = 0
    supports_contract_calls: bool = False
    spenders: list[SpenderModel] = []

    @field_validator('api_root')
    @classmethod
    def ensure_protocol(cls, value: str) -> str:
        value = value.strip()
        if not value.startswith(('http://', 'https://')):
            value = f'https://{value}'
        return value.rstrip('/')

    def get_spender(self, chain_id: int) -> Optional[SpenderModel]:
        return next(
            (spender for spender in self.spenders if spender.chain_id == chain_id),
            None,
        )


class ProviderInfoModel(BaseModel):
    display_name: str
    name: str
    kind: ProviderKind = ProviderKind.HTTP
    supports_contract_calls: bool = False
    router: Optional[str] = None
    approval: Optional[str] = None


class ChainProvidersModel(BaseModel):
    chain_id: Optional[int] = None
    providers: list[ProviderInfoModel]
