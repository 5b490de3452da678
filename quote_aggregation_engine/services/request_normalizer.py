import math
from typing import Optional

from quote_aggregation_engine.config import Config
from quote_aggregation_engine.models.chain import TokenModel
from quote_aggregation_engine.models.meta_agg_models import SwapRequest
from quote_aggregation_engine.utils.common import display_amount, is_address
from quote_aggregation_engine.utils.errors import InvalidParameter


def _validate_address(value: Optional[str], field: str, required: bool = False) -> None:
    if not value:
        if required:
            raise InvalidParameter(f'{field} address is required', field=field)
        return
    if not is_address(value):
        raise InvalidParameter(f'{field} address {value} is malformed', field=field)


def _validate_token(token: TokenModel, field: str) -> None:
    if token.chain_id is not None and token.chain_id <= 0:
        raise InvalidParameter(f'{field} chain id must be positive, got {token.chain_id}', field=field)
    _validate_address(token.address, field)


def _dedupe(names: list[str]) -> list[str]:
    return list(dict.fromkeys(names))


def normalize_request(
    request: SwapRequest,
    config: Config,
    provider_name: Optional[str] = None,
) -> SwapRequest:
    """
    Validates a swap request and fills its defaults.

    Normalization happens once: a request already flagged as normalized is
    returned as is. The input request is never mutated, a copy is returned.

    Args:
        request: swap request as received from the caller
        config: engine configuration with the defaults
        provider_name: set for single-provider calls, appended to the providers

    Raises:
        InvalidParameter: on malformed addresses, non-positive chain ids or
            amount, negative slippage
    """
    if request.normalized:
        return request

    if request.input.chain_id is None:
        raise InvalidParameter('input chain id is required', field='input')
    _validate_token(request.input, 'input')
    _validate_token(request.output, 'output')
    _validate_address(request.payer, 'payer', required=True)
    _validate_address(request.receiver, 'receiver')
    if request.input_amount <= 0:
        raise InvalidParameter(f'input amount must be positive, got {request.input_amount}', field='input_amount')
    if math.isinf(display_amount(request.input_amount, request.input.decimals)):
        raise InvalidParameter('input amount is out of range', field='input_amount')
    if request.max_slippage is not None and request.max_slippage < 0:
        raise InvalidParameter(f'slippage must not be negative, got {request.max_slippage}', field='max_slippage')
    if request.expiry_ms is not None and request.expiry_ms <= 0:
        raise InvalidParameter(f'expiry must be positive, got {request.expiry_ms}', field='expiry_ms')

    output = request.output
    if output.chain_id is None:
        output = output.model_copy(update={'chain_id': request.input.chain_id})

    if request.providers:
        providers = list(request.providers)
    elif request.custom_contract_calls:
        providers = list(config.CONTRACT_CALL_PROVIDERS)
    else:
        providers = list(config.DEFAULT_PROVIDERS)
    if provider_name and provider_name not in providers:
        providers.append(provider_name)

    max_slippage = request.max_slippage
    if max_slippage is None:
        max_slippage = config.MAX_SLIPPAGE_BPS
    max_slippage = min(max_slippage, config.SLIPPAGE_BPS_CEILING)

    return request.model_copy(update={
        'output': output,
        'receiver': request.receiver or request.payer,
        'providers': _dedupe(providers),
        'max_slippage': max_slippage,
        'expiry_ms': request.expiry_ms or config.DEFAULT_EXPIRY_MS,
        'normalized': True,
    })
