from unittest.mock import AsyncMock, patch

import pytest
from starlette.testclient import TestClient

from quote_aggregation_engine.rest_api.create_app import create_app
from quote_aggregation_engine.services.ranking import RankedCandidates
from quote_aggregation_engine.tests.fixtures.fake_providers import make_candidate
from quote_aggregation_engine.tests.fixtures.swap_requests import PAYER, USDC, WETH
from quote_aggregation_engine.utils.errors import (
    NoRouteFound,
    ProviderNotFound,
)

SERVICE_PATH = 'quote_aggregation_engine.services.meta_aggregation_service.MetaAggregationService'


@pytest.fixture()
def payload() -> dict:
    return {
        'input': {'chain_id': 1, 'address': USDC, 'symbol': 'USDC', 'decimals': 6},
        'output': {'address': WETH, 'symbol': 'WETH', 'decimals': 18},
        'input_amount': 1_000 * 10 ** 6,
        'payer': PAYER,
        'providers': ['zerox', 'kyberswap'],
        # a caller cannot mark the request as already normalized
        'normalized': True,
    }


@pytest.fixture()
def ranked(normalized_request) -> RankedCandidates:
    return RankedCandidates([
        make_candidate(normalized_request, 6 * 10 ** 17, provider='kyberswap'),
        make_candidate(normalized_request, 5 * 10 ** 17, provider='zerox'),
    ])


@patch(f'{SERVICE_PATH}.get_ranked_candidates', new_callable=AsyncMock)
def test_get_routes(get_ranked_mock: AsyncMock, trading_client, payload, ranked):
    get_ranked_mock.return_value = ranked

    response = trading_client.post('v1/routes', json=payload)

    assert response.status_code == 200
    routes = response.json()
    assert [route['provider'] for route in routes] == ['kyberswap', 'zerox']
    assert routes[0]['global_estimate']['output_atomic'] == str(6 * 10 ** 17)
    assert routes[0]['global_estimate']['output'] == 0.6
    assert routes[0]['to'] == '0x' + 'f' * 40

    request, = get_ranked_mock.await_args.args
    assert not request.normalized
    assert request.payer == PAYER
    assert request.input_amount == 1_000 * 10 ** 6


@patch(f'{SERVICE_PATH}.get_ranked_candidates', new_callable=AsyncMock)
def test_no_route_found(get_ranked_mock: AsyncMock, trading_client, payload):
    get_ranked_mock.side_effect = NoRouteFound('1000.0 USDC → WETH', ['zerox', 'kyberswap'])

    response = trading_client.post('v1/routes', json=payload)

    assert response.status_code == 409
    assert response.json()['providers'] == ['zerox', 'kyberswap']
    assert response.json()['error'].startswith('No viable routes found')


def test_invalid_payer(trading_client, payload):
    response = trading_client.post('v1/routes', json={**payload, 'payer': '0x123'})
    assert response.status_code == 400
    assert response.json()['reason'] == 'payer address 0x123 is malformed'


def test_malformed_body(trading_client, payload):
    response = trading_client.post('v1/routes', json={**payload, 'input_amount': 'a lot'})
    assert response.status_code == 422


@patch(f'{SERVICE_PATH}.get_best_candidate', new_callable=AsyncMock)
def test_get_best_route(get_best_mock: AsyncMock, trading_client, payload, ranked):
    get_best_mock.return_value = ranked.best()

    response = trading_client.post('v1/routes/best', json=payload)

    assert response.status_code == 200
    assert response.json()['provider'] == 'kyberswap'


@patch(f'{SERVICE_PATH}.get_call_data', new_callable=AsyncMock)
def test_get_call_data(get_call_data_mock: AsyncMock, trading_client, payload):
    get_call_data_mock.return_value = '0xabcdef'

    response = trading_client.post('v1/routes/calldata', json=payload)

    assert response.status_code == 200
    assert response.json() == {'data': '0xabcdef'}


@patch(f'{SERVICE_PATH}.get_provider_candidate', new_callable=AsyncMock)
def test_get_provider_route(get_provider_candidate_mock: AsyncMock, trading_client, payload):
    get_provider_candidate_mock.return_value = None

    response = trading_client.post('v1/routes/odos', json=payload)

    assert response.status_code == 200
    assert response.json() is None
    request, provider = get_provider_candidate_mock.await_args.args
    assert provider == 'odos'
    assert not request.normalized


def test_get_unknown_provider_route(trading_client, payload):
    response = trading_client.post('v1/routes/unknown', json=payload)
    assert response.status_code == ProviderNotFound.code
    assert response.json()['provider'] == 'unknown'


def test_status_not_tracked(trading_client):
    response = trading_client.get('v1/status/kyberswap', params={'txHash': '0x1'})
    assert response.status_code == 404
    assert response.json() == {'detail': 'Status tracking is not supported by kyberswap'}


def test_status_requires_tx_hash(trading_client):
    response = trading_client.get('v1/status/lifi', params={'txId': 'abc'})
    assert response.status_code == 409
    assert response.json()['reason'] == 'Transaction hash is required'


def test_health_check(trading_client):
    response = trading_client.get('health_check')
    assert response.status_code == 200
    body = response.json()
    assert body['status'] == 'OK'
    assert {'kyberswap', 'zerox', 'odos', 'lifi'} <= set(body['providers'])


@patch(f'{SERVICE_PATH}.get_ranked_candidates', new_callable=AsyncMock)
def test_unexpected_error_is_problem_details(get_ranked_mock: AsyncMock, config, payload):
    get_ranked_mock.side_effect = RuntimeError('boom')
    app = create_app(config=config)

    with TestClient(app, raise_server_exceptions=False) as client:
        response = client.post('v1/routes', json=payload, headers={'x-request-id': 'req-500'})

    assert response.status_code == 500
    problem = response.json()
    assert problem['title'] == 'Internal Server Error'
    assert problem['detail'] == 'RuntimeError when executing POST request'
    assert problem['instance'].endswith('/v1/routes')
    assert problem['request_id'] == 'req-500'
