from enum import Enum
from typing import Annotated, Optional

from pydantic import BaseModel, Field, PlainSerializer

from quote_aggregation_engine.models.chain import TokenModel
from quote_aggregation_engine.utils.common import address_to_lower

# Smallest-unit token amount. Kept as an int, rendered as a string in JSON.
AtomicAmount = Annotated[int, PlainSerializer(str, return_type=str, when_used='json')]


class StepType(str, Enum):
    SWAP = 'swap'
    BRIDGE = 'bridge'
    CROSS_CHAIN_SWAP = 'cross_chain_swap'  # swap + bridge or bridge + swap
    CONTRACT_CALL = 'contract_call'
    TRANSFER = 'transfer'  # fee payment, rerouting...


class ProtocolType(str, Enum):
    DEX = 'dex'
    CEX = 'cex'
    OTC = 'otc'
    AGGREGATOR = 'aggregator'
    BRIDGE = 'bridge'


class OpStatus(str, Enum):
    WAITING = 'waiting'
    PENDING = 'pending'
    DONE = 'done'
    FAILED = 'failed'
    SUCCESS = 'success'
    NEEDS_GAS = 'needs_gas'
    ONGOING = 'ongoing'
    PARTIAL_SUCCESS = 'partial_success'
    NOT_FOUND = 'not_found'


class ContractCall(BaseModel):
    to_address: Optional[address_to_lower] = None
    call_data: str
    gas_limit: Optional[AtomicAmount] = None
    input_position: Optional[int] = None


class SwapRequest(BaseModel):
    input: TokenModel  # token being sold
    output: TokenModel  # token being bought. chain_id defaults to input's one
    input_amount: AtomicAmount  # amount of input token in base units
    payer: address_to_lower
    receiver: Optional[address_to_lower] = None  # defaults to payer
    max_slippage: Optional[int] = None  # basis points, 500 == 5%
    providers: Optional[list[str]] = None  # provider names to query
    expiry_ms: Optional[int] = None  # per-call deadline
    custom_contract_calls: list[ContractCall] = []
    bridge_blacklist: list[str] = []
    exchange_blacklist: list[str] = []
    integrator: Optional[str] = None
    referrer: Optional[str] = None
    normalized: bool = False  # set once by the request normalizer


class ProtocolModel(BaseModel):
    id: str
    name: str
    type: Optional[ProtocolType] = None
    description: Optional[str] = None
    logo: Optional[str] = None


class SwapEstimate(BaseModel):
    input: float = 0  # display amount, see services.estimates.to_decimal_amount
    input_atomic: AtomicAmount = 0
    output: float = 0
    output_atomic: AtomicAmount = 0
    exchange_rate: float = 0  # output / input
    slippage: float = 0
    price_impact: float = 0
    gas_cost_usd: float = 0
    gas_cost_atomic: AtomicAmount = 0
    fee_cost_usd: float = 0
    fee_cost_atomic: AtomicAmount = 0
    fee_token: Optional[TokenModel] = None  # None means fee is paid in input token


class SwapStep(BaseModel):
    type: StepType
    id: Optional[str] = None
    description: Optional[str] = None
    input: Optional[TokenModel] = None
    output: Optional[TokenModel] = None
    input_chain_id: Optional[int] = None
    output_chain_id: Optional[int] = None
    payer: Optional[str] = None
    receiver: Optional[str] = None
    protocol: Optional[ProtocolModel] = None
    estimate: SwapEstimate = Field(default_factory=SwapEstimate)


class TransactionPayload(BaseModel):
    to: str
    data: str = '0x'
    value: AtomicAmount = 0
    from_address: Optional[str] = None
    chain_id: Optional[int] = None


class Candidate(BaseModel):
    provider: Optional[str] = None  # set by the provider or by the coordinator
    to: str  # execution target, never interpreted by the engine
    data: str = '0x'
    value: AtomicAmount = 0
    from_address: Optional[str] = None
    chain_id: Optional[int] = None
    approval_address: Optional[str] = None
    gas_limit: Optional[AtomicAmount] = None
    custom_data: dict = {}
    steps: list[SwapStep] = Field(..., min_length=1)
    global_estimate: Optional[SwapEstimate] = None
    latency_ms: Optional[int] = None
    request: SwapRequest

    def to_transaction(self) -> TransactionPayload:
        return TransactionPayload(
            to=self.to,
            data=self.data,
            value=self.value,
            from_address=self.from_address,
            chain_id=self.chain_id,
        )


class QuotePerformance(BaseModel):
    provider: str
    exchange_rate: float
    output: float
    gas_cost_usd: float
    fee_cost_usd: float
    latency_ms: Optional[int] = None
    steps: int
    protocols: list[str]


class StatusRequest(BaseModel):
    tx_id: Optional[str] = None
    tx_hash: Optional[str] = None
    input_chain_id: Optional[int] = None
    output_chain_id: Optional[int] = None


class StatusResponse(BaseModel):
    id: str
    status: OpStatus
    tx_hash: Optional[str] = None
    sending_tx: Optional[str] = None
    receiving_tx: Optional[str] = None
    substatus: Optional[str] = None
    substatus_message: Optional[str] = None
