import json

from quote_aggregation_engine.utils.errors import (
    InvalidParameter,
    NoRouteFound,
    ParseResponseError,
    ProviderTimeoutError,
    responses,
)


def test_status_follows_owner():
    assert InvalidParameter.code == 400
    assert NoRouteFound.code == ProviderTimeoutError.code == 409
    assert ParseResponseError.code == 417


def test_provider_error_payload():
    error = ProviderTimeoutError('odos', 'no answer in 5000 ms', chain_id=1)

    assert str(error) == 'Provider is unavailable. Source: odos'
    assert error.to_dict() == {
        'provider': 'odos',
        'reason': 'no answer in 5000 ms',
        'error_owner': 'provider',
        'chain_id': 1,
    }
    response = error.to_http_exception()
    assert response.status_code == 409
    assert json.loads(response.body) == {
        'error': 'Provider is unavailable. Source: odos',
        'reason': 'no answer in 5000 ms',
        'provider': 'odos',
    }


def test_no_route_payload():
    error = NoRouteFound('1000 USDC -> WETH on 1', ['odos', 'zerox'])
    body = json.loads(error.to_http_exception().body)
    assert body['providers'] == ['odos', 'zerox']
    assert body['reason'] == '1000 USDC -> WETH on 1 across providers: odos, zerox'


def test_openapi_responses():
    assert set(responses) == {400, 409, 417}
    assert 'Chain is not supported' in responses[400]['description']
    assert 'No viable routes found' in responses[409]['description']
    assert 'Cannot parse response' in responses[417]['description']
