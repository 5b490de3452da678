import re
import time
from typing import TYPE_CHECKING, Any, Awaitable, Optional, Tuple

from pydantic import constr
from web3 import Web3

if TYPE_CHECKING:
    from quote_aggregation_engine.models.meta_agg_models import (
        Candidate,
        SwapRequest,
    )

NATIVE_TOKEN_ADDRESSES = (
    '',
    '0x0000000000000000000000000000000000000000',
    '0xeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeee',
)

HEX_ADDRESS_RE = re.compile(r'^0x[a-fA-F0-9]{40}$')


def camel_to_snake(field: str) -> str:
    field = re.sub('(.)([A-Z][a-z]+)', r'\1_\2', field)
    return re.sub('([a-z0-9])([A-Z])', r'\1_\2', field).lower()


def display_amount(atomic: int, decimals: int, precision: int = 6) -> float:
    """
    Display value of an atomic amount, truncated to `precision` fractional digits.

    Amounts beyond the float range convert to inf.
    """
    scale = max(decimals - precision, 0)
    try:
        return (int(atomic) // 10 ** scale) / 10 ** (decimals - scale)
    except OverflowError:
        return float('inf') if atomic > 0 else float('-inf')


def is_address(value: Optional[str]) -> bool:
    """EVM address check. Lower-cased addresses skip the checksum validation."""
    if not value or not HEX_ADDRESS_RE.match(value):
        return False
    return Web3.is_address(value.lower())


def is_native_address(address: Optional[str]) -> bool:
    return (address or '').lower() in NATIVE_TOKEN_ADDRESSES


def shorten_address(address: Optional[str], start: int = 4, end: int = 4, sep: str = '.') -> str:
    if not address:
        return '???'
    start, end = max(0, start), max(0, end)
    if 2 + start + end >= len(address):
        return address
    return f'{address[:2 + start]}{sep}{address[-end:]}'


def request_to_string(request: 'SwapRequest') -> str:
    """Human-readable one-liner of a swap request, used in logs and errors."""
    providers_ = request.providers or []
    provider_label = (
        f'Meta:{len(providers_)}' if len(providers_) > 2 else ','.join(providers_)
    )
    amount = display_amount(request.input_amount, request.input.decimals)
    return (
        f'[{provider_label}] {amount} {request.input.symbol} '
        f'({request.input.chain_id}:{shorten_address(request.input.address)}) → '
        f'{request.output.symbol} '
        f'({request.output.chain_id}:{shorten_address(request.output.address)})'
    )


def candidate_to_string(candidate: 'Candidate') -> str:
    last_step = candidate.steps[-1]
    estimate = last_step.estimate
    output_symbol = last_step.output.symbol if last_step.output else '???'
    return (
        f'[{candidate.provider or "???"}] router: {shorten_address(candidate.to)} → '
        f'{estimate.output} {output_symbol} | Rate: {estimate.exchange_rate:.6f} | '
        f'Gas: ${estimate.gas_cost_usd:.3f} | Fee: ${estimate.fee_cost_usd:.3f} | '
        f'Steps: {len(candidate.steps)}'
    )


async def with_latency(awaitable: Awaitable[Any]) -> Tuple[Any, int]:
    """Awaits and returns the result together with the elapsed milliseconds."""
    start = time.perf_counter()
    result = await awaitable
    return result, round((time.perf_counter() - start) * 1000)


address_to_lower = constr(strip_whitespace=True, to_lower=True)
