from unittest.mock import AsyncMock, patch

import pytest
from aiohttp import ClientResponseError, RequestInfo

from quote_aggregation_engine.models.chain import TokenModel
from quote_aggregation_engine.models.meta_agg_models import ProtocolType, StepType
from quote_aggregation_engine.tests.fixtures.swap_requests import PAYER, USDC
from quote_aggregation_engine.utils.errors import (
    AggregationProviderError,
    UnsupportedChainError,
)

GET_RESPONSE = (
    'quote_aggregation_engine.providers.kyberswap_v1.kyberswap_provider_v1.'
    'KyberSwapProviderV1._get_response'
)
ROUTER = '0x6131B5fae19EA4f9D964eAc0408E4408b66337b5'

ROUTE_RESPONSE = {
    'inputAmount': '1000000000',
    'outputAmount': '512345678901234567',
    'totalGas': 150000,
    'gasPriceGwei': '20',
    'gasUsd': 5.5,
    'amountInUsd': 1000.1,
    'amountOutUsd': 998.7,
    'routerAddress': ROUTER,
    'encodedSwapData': '0xe21fd0e90000000000000000000000000000000000000000000000000000000000000020',
}


def client_error(status: int, body) -> ClientResponseError:
    return ClientResponseError(
        RequestInfo(url='https://aggregator-api.kyberswap.com', method='GET', headers=None),
        (),
        status=status,
        message=[body],
    )


@pytest.mark.asyncio()
@patch(GET_RESPONSE, new_callable=AsyncMock)
async def test_build_candidate(get_response_mock: AsyncMock, kyberswap_provider, normalized_request):
    get_response_mock.return_value = ROUTE_RESPONSE

    candidate = await kyberswap_provider.build_candidate(normalized_request)

    url, params = get_response_mock.await_args.args
    assert url == f'{kyberswap_provider.api_root}/ethereum/route/encode'
    assert params['tokenIn'] == USDC
    assert params['amountIn'] == '1000000000'
    assert params['slippageTolerance'] == '500'
    assert params['to'] == PAYER

    assert candidate.provider == 'kyberswap'
    assert candidate.to == ROUTER
    assert candidate.data == ROUTE_RESPONSE['encodedSwapData']
    assert candidate.value == 0
    assert candidate.approval_address == ROUTER.lower()
    assert candidate.gas_limit == 150000

    step, = candidate.steps
    assert step.type == StepType.SWAP
    assert step.protocol.type == ProtocolType.AGGREGATOR

    estimate = candidate.global_estimate
    assert estimate.output_atomic == 512345678901234567
    assert estimate.output == 0.512345
    assert estimate.input == 1000.0
    assert estimate.gas_cost_atomic == 150000 * 20 * 10 ** 9
    assert estimate.gas_cost_usd == 5.5
    assert estimate.slippage == 0.05


@pytest.mark.asyncio()
@patch(GET_RESPONSE, new_callable=AsyncMock)
async def test_fractional_gas_price_is_exact(get_response_mock: AsyncMock, kyberswap_provider, normalized_request):
    get_response_mock.return_value = {**ROUTE_RESPONSE, 'gasPriceGwei': '0.57', 'totalGas': 123457}

    candidate = await kyberswap_provider.build_candidate(normalized_request)

    assert candidate.global_estimate.gas_cost_atomic == 123457 * 570_000_000


@pytest.mark.asyncio()
@patch(GET_RESPONSE, new_callable=AsyncMock)
async def test_native_input_sends_value(get_response_mock: AsyncMock, kyberswap_provider, normalized_request, config):
    eth = TokenModel(chain_id=1, address=config.NATIVE_TOKEN_ADDRESS, symbol='ETH', decimals=18)
    request = normalized_request.model_copy(update={'input': eth, 'input_amount': 10 ** 18})
    get_response_mock.return_value = {**ROUTE_RESPONSE, 'inputAmount': str(10 ** 18)}

    candidate = await kyberswap_provider.build_candidate(request)

    assert get_response_mock.await_args.args[1]['tokenIn'] == config.NATIVE_TOKEN_ADDRESS
    assert candidate.value == 10 ** 18


@pytest.mark.asyncio()
@patch(GET_RESPONSE, new_callable=AsyncMock)
async def test_no_route_returns_none(get_response_mock: AsyncMock, kyberswap_provider, normalized_request):
    get_response_mock.side_effect = client_error(400, {'code': 4008, 'message': 'route not found'})
    assert await kyberswap_provider.build_candidate(normalized_request) is None


@pytest.mark.asyncio()
@patch(GET_RESPONSE, new_callable=AsyncMock)
async def test_zero_output_returns_none(get_response_mock: AsyncMock, kyberswap_provider, normalized_request):
    get_response_mock.return_value = {**ROUTE_RESPONSE, 'outputAmount': '0'}
    assert await kyberswap_provider.build_candidate(normalized_request) is None


@pytest.mark.asyncio()
@patch(GET_RESPONSE, new_callable=AsyncMock)
async def test_server_error_raises(get_response_mock: AsyncMock, kyberswap_provider, normalized_request):
    get_response_mock.side_effect = client_error(500, {'message': 'internal error'})
    with pytest.raises(AggregationProviderError):
        await kyberswap_provider.build_candidate(normalized_request)


@pytest.mark.asyncio()
@patch(GET_RESPONSE, new_callable=AsyncMock)
async def test_unsupported_chain(get_response_mock: AsyncMock, kyberswap_provider, normalized_request):
    gnosis_usdc = TokenModel(chain_id=100, address='0xddafbb505ad214d7b80b1f830fccc89b60fb7a83', decimals=6)
    request = normalized_request.model_copy(update={'input': gnosis_usdc, 'output': gnosis_usdc})

    assert not kyberswap_provider.supports_chain(100)
    with pytest.raises(UnsupportedChainError):
        await kyberswap_provider.build_candidate(request)
    get_response_mock.assert_not_awaited()


@pytest.mark.asyncio()
@patch(GET_RESPONSE, new_callable=AsyncMock)
async def test_get_quote_is_cached(get_response_mock: AsyncMock, kyberswap_provider, normalized_request):
    await kyberswap_provider.get_quote.cache.clear()
    get_response_mock.return_value = ROUTE_RESPONSE

    first = await kyberswap_provider.get_quote(normalized_request)
    second = await kyberswap_provider.get_quote(normalized_request)

    assert first == second == ROUTE_RESPONSE
    get_response_mock.assert_awaited_once()

    # building a candidate always reaches the provider
    await kyberswap_provider.build_candidate(normalized_request)
    assert get_response_mock.await_count == 2
    await kyberswap_provider.get_quote.cache.clear()
