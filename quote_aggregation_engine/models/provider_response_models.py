"""Wire payloads of the provider APIs. Parsed only inside provider adapters."""
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ProviderResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra='ignore')


# KyberSwap: GET /{chain}/route/encode

class KyberSwapResponse(ProviderResponse):
    input_amount: str
    output_amount: str
    total_gas: int = 0
    gas_price_gwei: str = '0'
    gas_usd: float = 0
    amount_in_usd: float = 0
    amount_out_usd: float = 0
    router_address: Optional[str] = None
    encoded_swap_data: Optional[str] = None


# 0x: GET /swap/v1/quote

class ZeroXValidationError(ProviderResponse):
    field: Optional[str] = None
    code: Optional[int] = None
    reason: Optional[str] = None


class ZeroXQuoteResponse(ProviderResponse):
    price: str
    to: str
    data: str
    value: str = '0'
    gas: str = '0'
    gas_price: str = '0'
    protocol_fee: str = '0'
    buy_amount: str
    sell_amount: str
    buy_token_address: str
    sell_token_address: str
    allowance_target: Optional[str] = None
    estimated_price_impact: Optional[str] = None


# Odos: POST /sor/quote/v2 and POST /sor/assemble

class OdosQuoteResponse(ProviderResponse):
    path_id: str
    in_amounts: list[str]
    out_amounts: list[str]
    gas_estimate: float = 0
    gwei_per_gas: float = 0
    gas_estimate_value: float = 0  # USD
    price_impact: Optional[float] = None


class OdosTransaction(ProviderResponse):
    to: str
    data: str
    value: str = '0'
    gas: Optional[int] = None
    gas_price: Optional[int] = None
    from_address: Optional[str] = Field(None, alias='from')
    chain_id: Optional[int] = None


class OdosAssembleResponse(ProviderResponse):
    transaction: OdosTransaction


# LI.FI: GET /quote, POST /quote/contractCalls and GET /status

class LiFiToken(ProviderResponse):
    address: str = ''
    chain_id: Optional[int] = None
    symbol: str = ''
    decimals: int = 18
    name: str = ''
    logo_uri: Optional[str] = Field(None, alias='logoURI')
    price_usd: Optional[float] = Field(None, alias='priceUSD')


class LiFiCost(ProviderResponse):
    amount: Optional[str] = None
    amount_usd: Optional[str] = Field(None, alias='amountUSD')


class LiFiToolDetails(ProviderResponse):
    key: str = ''
    name: str = ''
    logo_uri: Optional[str] = Field(None, alias='logoURI')


class LiFiAction(ProviderResponse):
    from_chain_id: int
    to_chain_id: int
    from_token: LiFiToken
    to_token: LiFiToken
    from_amount: str
    slippage: Optional[float] = None
    from_address: Optional[str] = None
    to_address: Optional[str] = None


class LiFiEstimate(ProviderResponse):
    from_amount: str
    to_amount: str
    to_amount_min: Optional[str] = None
    approval_address: Optional[str] = None
    gas_costs: list[LiFiCost] = []
    fee_costs: list[LiFiCost] = []


class LiFiStep(ProviderResponse):
    id: Optional[str] = None
    type: str
    tool: Optional[str] = None
    tool_details: Optional[LiFiToolDetails] = None
    action: LiFiAction
    estimate: LiFiEstimate


class LiFiTransactionRequest(ProviderResponse):
    to: str
    data: str
    value: str = '0x0'
    from_address: Optional[str] = Field(None, alias='from')
    chain_id: Optional[int] = None
    gas_limit: Optional[str] = None
    gas_price: Optional[str] = None


class LiFiQuoteResponse(LiFiStep):
    included_steps: list[LiFiStep] = []
    transaction_request: Optional[LiFiTransactionRequest] = None


class LiFiTransactionInfo(ProviderResponse):
    tx_hash: Optional[str] = None
    chain_id: Optional[int] = None


class LiFiStatusResponse(ProviderResponse):
    transaction_id: Optional[str] = None
    status: Optional[str] = None
    substatus: Optional[str] = None
    substatus_message: Optional[str] = None
    sending: Optional[LiFiTransactionInfo] = None
    receiving: Optional[LiFiTransactionInfo] = None
