import pytest

from quote_aggregation_engine.models.meta_agg_models import (
    OpStatus,
    StatusRequest,
    StatusResponse,
    SwapRequest,
)
from quote_aggregation_engine.providers.lifi_v1.lifi_provider_v1 import LiFiProviderV1
from quote_aggregation_engine.providers.wrappers import (
    OffchainSignatureProvider,
    UnimplementedProvider,
)
from quote_aggregation_engine.services.meta_aggregation_service import (
    MetaAggregationService,
)
from quote_aggregation_engine.services.request_normalizer import normalize_request
from quote_aggregation_engine.tests.fixtures.fake_providers import (
    FakeProvider,
    SyncFailingProvider,
)
from quote_aggregation_engine.tests.fixtures.swap_requests import PAYER
from quote_aggregation_engine.utils.common import request_to_string
from quote_aggregation_engine.utils.errors import (
    AggregationProviderError,
    InvalidParameter,
    NoRouteFound,
    ParseResponseError,
    ProviderNotFound,
    ProviderTimeoutError,
    UnsupportedChainError,
)

EXPIRY_MS = 100
SLOW = 1  # seconds, far beyond EXPIRY_MS


@pytest.fixture
def eth_to_usdc(weth, usdc, config) -> SwapRequest:
    """1 WETH to USDC with a short deadline."""
    request = SwapRequest(
        input=weth,
        output=usdc,
        input_amount=10 ** 18,
        payer=PAYER,
        providers=['a', 'b', 'c'],
        expiry_ms=EXPIRY_MS,
    )
    return normalize_request(request, config)


@pytest.mark.asyncio
async def test_fan_out_isolates_failures(make_service, eth_to_usdc):
    failing = SyncFailingProvider('a')
    slow = FakeProvider('b', output_atomic=1_900 * 10 ** 6, delay=SLOW)
    ok = FakeProvider('c', output_atomic=1_795 * 10 ** 6)
    service = make_service(failing, slow, ok)

    candidates = await service.fan_out(eth_to_usdc, ['a', 'b', 'c'], EXPIRY_MS)

    assert [c.provider for c in candidates] == ['c']
    assert failing.calls == slow.calls == ok.calls == 1
    assert slow.cancelled


@pytest.mark.asyncio
async def test_fan_out_stamps_candidates(make_service, eth_to_usdc):
    service = make_service(FakeProvider('a', output_atomic=1_800 * 10 ** 6))

    candidate, = await service.fan_out(eth_to_usdc, ['a'], EXPIRY_MS)

    assert candidate.provider == 'a'
    assert candidate.from_address == PAYER
    assert isinstance(candidate.latency_ms, int)
    assert 0 <= candidate.latency_ms < EXPIRY_MS


@pytest.mark.asyncio
async def test_fan_out_keeps_sender_set_by_provider(make_service, eth_to_usdc):
    sender = '0x' + '5' * 40
    service = make_service(FakeProvider('a', output_atomic=1_800 * 10 ** 6, from_address=sender))

    candidate, = await service.fan_out(eth_to_usdc, ['a'], EXPIRY_MS)

    assert candidate.from_address == sender


@pytest.mark.asyncio
async def test_fan_out_keeps_dispatch_order(make_service, eth_to_usdc):
    service = make_service(
        FakeProvider('a', output_atomic=1_700 * 10 ** 6, delay=0.02),
        FakeProvider('b', output_atomic=1_900 * 10 ** 6),
        FakeProvider('c', output_atomic=1_800 * 10 ** 6, delay=0.01),
    )
    candidates = await service.fan_out(eth_to_usdc, ['a', 'b', 'c'], EXPIRY_MS)
    assert [c.provider for c in candidates] == ['a', 'b', 'c']


@pytest.mark.asyncio
async def test_fan_out_absorbs_provider_errors(make_service, eth_to_usdc):
    service = make_service(
        FakeProvider('a', error=ParseResponseError('a', 'bad payload')),
        FakeProvider('b', error=AggregationProviderError('b', 'HTTP 500')),
        FakeProvider('c', output_atomic=1_800 * 10 ** 6),
    )
    candidates = await service.fan_out(eth_to_usdc, ['a', 'b', 'c'], EXPIRY_MS)
    assert [c.provider for c in candidates] == ['c']


@pytest.mark.asyncio
async def test_fan_out_skips_unknown_and_unsupported_providers(make_service, eth_to_usdc):
    off_chain = FakeProvider('bsc_only', output_atomic=1_800 * 10 ** 6, chains=(56,))
    ok = FakeProvider('c', output_atomic=1_800 * 10 ** 6)
    service = make_service(off_chain, ok)

    candidates = await service.fan_out(eth_to_usdc, ['unknown', 'bsc_only', 'c'], EXPIRY_MS)

    assert [c.provider for c in candidates] == ['c']
    assert off_chain.calls == 0


@pytest.mark.asyncio
async def test_fan_out_raises_no_route_found(make_service, eth_to_usdc):
    service = make_service(
        FakeProvider('a'),
        FakeProvider('b', delay=SLOW, output_atomic=1),
        SyncFailingProvider('c'),
    )
    with pytest.raises(NoRouteFound) as exc_info:
        await service.fan_out(eth_to_usdc, ['a', 'b', 'c', 'unknown'], EXPIRY_MS)

    exc = exc_info.value
    assert exc.provider_names == ['a', 'b', 'c', 'unknown']
    assert 'WETH' in exc.request_summary
    assert 'a, b, c, unknown' in str(exc)
    assert exc.code == 409


@pytest.mark.asyncio
async def test_get_ranked_candidates(make_service, eth_to_usdc):
    service = make_service(
        FakeProvider('a', output_atomic=1_800 * 10 ** 6),
        FakeProvider('b', output_atomic=1_850 * 10 ** 6, delay=SLOW),
        FakeProvider('c', output_atomic=1_795 * 10 ** 6),
    )

    ranked = await service.get_ranked_candidates(eth_to_usdc)

    assert [c.provider for c in ranked] == ['a', 'c']
    assert ranked.best().global_estimate.exchange_rate == 1_800
    assert ranked[1].global_estimate.exchange_rate == 1_795


@pytest.mark.asyncio
async def test_get_ranked_candidates_normalizes_request(make_service, weth, usdc, config):
    provider = FakeProvider('zerox', output_atomic=1_800 * 10 ** 6)
    service = make_service(provider)
    request = SwapRequest(input=weth, output=usdc, input_amount=10 ** 18, payer=PAYER, providers=['zerox'])

    best = await service.get_best_candidate(request)

    assert best.request.normalized
    assert best.request.receiver == PAYER
    assert best.request.max_slippage == config.MAX_SLIPPAGE_BPS


@pytest.mark.asyncio
async def test_invalid_request_never_reaches_providers(make_service, eth_to_usdc):
    provider = FakeProvider('a', output_atomic=1)
    service = make_service(provider)
    request = eth_to_usdc.model_copy(update={'normalized': False, 'payer': '0xnope'})

    with pytest.raises(InvalidParameter):
        await service.get_ranked_candidates(request)
    assert provider.calls == 0


@pytest.mark.asyncio
async def test_get_call_data(make_service, eth_to_usdc):
    service = make_service(FakeProvider('a', output_atomic=1_800 * 10 ** 6))
    assert await service.get_call_data(eth_to_usdc) == '0xabcdef'


@pytest.mark.asyncio
async def test_get_provider_candidate(make_service, eth_to_usdc):
    service = make_service(FakeProvider('a', output_atomic=1_800 * 10 ** 6), FakeProvider('b'))

    candidate = await service.get_provider_candidate(eth_to_usdc, 'a')
    assert candidate.provider == 'a'
    assert candidate.latency_ms is not None

    assert await service.get_provider_candidate(eth_to_usdc, 'b') is None


@pytest.mark.asyncio
async def test_get_provider_candidate_errors(make_service, eth_to_usdc):
    service = make_service(
        FakeProvider('slow', output_atomic=1, delay=SLOW),
        FakeProvider('bsc_only', output_atomic=1, chains=(56,)),
        FakeProvider('broken', error=ParseResponseError('broken', 'bad payload')),
    )

    with pytest.raises(ProviderNotFound):
        await service.get_provider_candidate(eth_to_usdc, 'missing')
    with pytest.raises(UnsupportedChainError):
        await service.get_provider_candidate(eth_to_usdc, 'bsc_only')
    with pytest.raises(ProviderTimeoutError):
        await service.get_provider_candidate(eth_to_usdc, 'slow')
    with pytest.raises(ParseResponseError):
        await service.get_provider_candidate(eth_to_usdc, 'broken')


@pytest.mark.asyncio
async def test_get_status(make_service):
    status = StatusResponse(id='0x1', status=OpStatus.DONE)
    service = make_service(FakeProvider('a', status=status), FakeProvider('b'))

    assert await service.get_status('a', StatusRequest(tx_hash='0x1')) == status
    assert await service.get_status('b', StatusRequest(tx_hash='0x1')) is None
    with pytest.raises(ProviderNotFound):
        await service.get_status('missing', StatusRequest(tx_hash='0x1'))


def test_build_provider_registry(provider_registry):
    assert {'kyberswap', 'zerox', 'odos', 'lifi', 'cowswap', 'hashflow'} <= set(provider_registry)
    assert isinstance(provider_registry['lifi'], LiFiProviderV1)
    assert isinstance(provider_registry['cowswap'], OffchainSignatureProvider)
    assert isinstance(provider_registry['hashflow'], UnimplementedProvider)
    assert provider_registry.get('missing') is None


@pytest.mark.asyncio
async def test_signature_and_unimplemented_providers_yield_no_route(
    config, providers, apm_client, aiohttp_session, provider_registry, eth_to_usdc
):
    service = MetaAggregationService(
        config=config,
        providers=providers,
        session=aiohttp_session,
        apm_client=apm_client,
        provider_registry=provider_registry,
    )
    with pytest.raises(NoRouteFound) as exc_info:
        await service.fan_out(eth_to_usdc, ['cowswap', 'hashflow'], EXPIRY_MS)
    assert exc_info.value.provider_names == ['cowswap', 'hashflow']


@pytest.mark.asyncio
async def test_huge_input_amount_is_rejected(make_service, weth, usdc):
    provider = FakeProvider('a', output_atomic=10 ** 6)
    service = make_service(provider)
    request = SwapRequest(
        input=weth, output=usdc, input_amount=10 ** 400, payer=PAYER, providers=['a'], expiry_ms=EXPIRY_MS,
    )

    with pytest.raises(InvalidParameter) as exc_info:
        await service.get_ranked_candidates(request)

    assert exc_info.value.kwargs == {'field': 'input_amount'}
    assert provider.calls == 0


def test_request_summary_of_huge_amount(weth, usdc):
    request = SwapRequest(input=weth, output=usdc, input_amount=10 ** 400, payer=PAYER, providers=['a'])
    assert request_to_string(request).startswith('[a] inf WETH')
