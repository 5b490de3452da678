"""
Cross-provider estimate math.

Atomic amounts are exact Python ints. Display amounts are floats truncated to
at most DISPLAY_PRECISION fractional digits before the float conversion, and
never feed back into atomic values.
"""
from decimal import Decimal, InvalidOperation
from typing import Iterable, Optional, Union

from quote_aggregation_engine.config import config
from quote_aggregation_engine.models.chain import TokenModel
from quote_aggregation_engine.models.meta_agg_models import (
    Candidate,
    SwapEstimate,
    SwapRequest,
    SwapStep,
)
from quote_aggregation_engine.utils.common import display_amount

Number = Union[int, float, str, Decimal, None]


def to_decimal_amount(atomic: int, decimals: int, precision: int = config.DISPLAY_PRECISION) -> float:
    """
    Converts an atomic amount into a display amount.

    The lowest `decimals - precision` digits are dropped with integer division
    first, so no float rounding happens on the full atomic value. Values out of
    the float range convert to inf.
    """
    return display_amount(atomic, decimals, precision)


def to_atomic_amount(value: Number) -> int:
    """Parses a provider amount into an int. Integer strings keep full precision."""
    if value is None or value == '':
        return 0
    if isinstance(value, bool):
        raise ValueError(f'Cannot convert {value!r} to an atomic amount')
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        value = value.strip()
        if value.lower().startswith('0x'):
            return int(value, 16)
        if value.lstrip('-').isdigit():
            return int(value)
    try:
        return int(Decimal(str(value)))
    except InvalidOperation as e:
        raise ValueError(f'Cannot convert {value!r} to an atomic amount') from e


def sum_costs(costs: Optional[Iterable], key: str, usd: bool = False) -> Union[int, float]:
    """
    Sums one field over a list of provider cost entries (dicts or models).
    USD values are summed as floats, atomic ones as exact ints.
    """
    if not costs:
        return 0.0 if usd else 0
    values = (
        cost.get(key) if isinstance(cost, dict) else getattr(cost, key, None)
        for cost in costs
    )
    if usd:
        return sum(float(value or 0) for value in values)
    return sum(to_atomic_amount(value) for value in values)


def empty_estimate() -> SwapEstimate:
    return SwapEstimate()


def exchange_rate(input_amount: float, output_amount: float) -> float:
    if not input_amount:
        return 0
    return output_amount / input_amount


def build_step_estimate(
    input_token: TokenModel,
    output_token: TokenModel,
    input_atomic: Number,
    output_atomic: Number,
    gas_cost_atomic: Number = 0,
    gas_cost_usd: float = 0,
    fee_cost_atomic: Number = 0,
    fee_cost_usd: float = 0,
    slippage: float = 0,
    price_impact: float = 0,
    fee_token: Optional[TokenModel] = None,
) -> SwapEstimate:
    input_atomic = to_atomic_amount(input_atomic)
    output_atomic = to_atomic_amount(output_atomic)
    input_amount = to_decimal_amount(input_atomic, input_token.decimals)
    output_amount = to_decimal_amount(output_atomic, output_token.decimals)
    return SwapEstimate(
        input=input_amount,
        input_atomic=input_atomic,
        output=output_amount,
        output_atomic=output_atomic,
        exchange_rate=exchange_rate(input_amount, output_amount),
        slippage=slippage or 0,
        price_impact=price_impact or 0,
        gas_cost_usd=gas_cost_usd or 0,
        gas_cost_atomic=to_atomic_amount(gas_cost_atomic),
        fee_cost_usd=fee_cost_usd or 0,
        fee_cost_atomic=to_atomic_amount(fee_cost_atomic),
        fee_token=fee_token,
    )


def compute_global_estimate(request: SwapRequest, steps: list[SwapStep]) -> SwapEstimate:
    """
    Aggregates per-step estimates into the estimate of the whole route.

    Costs are summed over all steps, slippage and price impact are the worst
    step's ones, the output is the last step's output and the input is the
    requested amount.
    """
    if not steps:
        raise ValueError('Cannot estimate a route without steps')
    estimates = [step.estimate for step in steps]
    output_atomic = estimates[-1].output_atomic
    input_amount = to_decimal_amount(request.input_amount, request.input.decimals)
    output_amount = to_decimal_amount(output_atomic, request.output.decimals)
    return SwapEstimate(
        input=input_amount,
        input_atomic=request.input_amount,
        output=output_amount,
        output_atomic=output_atomic,
        exchange_rate=exchange_rate(input_amount, output_amount),
        slippage=max(estimate.slippage for estimate in estimates),
        price_impact=max(estimate.price_impact for estimate in estimates),
        gas_cost_usd=sum(estimate.gas_cost_usd for estimate in estimates),
        gas_cost_atomic=sum(estimate.gas_cost_atomic for estimate in estimates),
        fee_cost_usd=sum(estimate.fee_cost_usd for estimate in estimates),
        fee_cost_atomic=sum(estimate.fee_cost_atomic for estimate in estimates),
    )


def add_estimates_to_candidate(candidate: Candidate) -> Candidate:
    return candidate.model_copy(
        update={'global_estimate': compute_global_estimate(candidate.request, candidate.steps)}
    )
