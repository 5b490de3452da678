import asyncio
import re
from pathlib import Path
from typing import Optional

import ujson
from aiohttp import ClientResponseError, ServerDisconnectedError
from pydantic import ValidationError

from quote_aggregation_engine.models.meta_agg_models import (
    Candidate,
    ProtocolModel,
    ProtocolType,
    StepType,
    SwapRequest,
    SwapStep,
)
from quote_aggregation_engine.models.provider_response_models import ZeroXQuoteResponse
from quote_aggregation_engine.providers.base_provider import BaseProvider
from quote_aggregation_engine.services.estimates import (
    add_estimates_to_candidate,
    build_step_estimate,
    to_atomic_amount,
)
from quote_aggregation_engine.utils.common import is_native_address
from quote_aggregation_engine.utils.errors import (
    AggregationProviderError,
    BaseAggregationProviderError,
    InsufficientLiquidityError,
    ParseResponseError,
)
from quote_aggregation_engine.utils.logger import get_logger

logger = get_logger(__name__)

ZERO_X_ERRORS = {
    'INSUFFICIENT_ASSET_LIQUIDITY': InsufficientLiquidityError,
    'IncompleteTransformERC20Error': InsufficientLiquidityError,
    'Insufficient funds for transaction': AggregationProviderError,
    'Gas estimation failed': AggregationProviderError,
}


class ZeroXProviderV1(BaseProvider):
    """Docs: https://0x.org/docs/api#introduction"""

    TRADING_API_VERSION = 1
    CONFIG_PATH = Path(__file__).parent / 'config.json'

    with open(CONFIG_PATH) as f:
        PROVIDER_NAME = ujson.load(f)['name']

    def _headers(self) -> dict:
        headers = super()._headers()
        if self.provider_config.api_key:
            headers['0x-api-key'] = self.provider_config.api_key
        return headers

    def _api_path_builder(self, path: str, endpoint: str, chain_id: int) -> str:
        alias = self.ensure_chain_supported(chain_id).alias
        root = self.api_root.replace('://', f'://{alias}.', 1) if alias else self.api_root
        return f'{root}/{path}/v{self.TRADING_API_VERSION}/{endpoint}'

    def _convert_params(self, request: SwapRequest) -> dict:
        query = {
            'sellToken': self._token_address(request.input.address),
            'buyToken': self._token_address(request.output.address),
            'sellAmount': str(request.input_amount),
            'takerAddress': request.payer,
            'slippagePercentage': str(request.max_slippage / 10_000),
            'skipValidation': 'true',
        }
        referrer = self.referrer(request)
        if referrer and self.provider_config.fee_bps:
            query['feeRecipient'] = referrer
            query['affiliateAddress'] = referrer
            query['buyTokenPercentageFee'] = str(self.provider_config.fee_bps / 10_000)
        return query

    def _token_address(self, address: Optional[str]) -> str:
        return self.config.NATIVE_TOKEN_ADDRESS if is_native_address(address) else address

    async def get_quote(self, request: SwapRequest) -> Optional[dict]:
        """
        Docs: https://0x.org/docs/api#get-swapv1quote

        Examples:
            - https://api.0x.org/swap/v1/quote?buyToken=0xEeeeeEeeeEeEeeEeEeEeeEEEeeeeEeeeeeeeEEeE&sellAmount=1000000&sellToken=0xa0b86991c6218b36c1d19d4a2e9eb0ce3606eb48
            - https://polygon.api.0x.org/swap/v1/quote?buyToken=0x7ceb23fd6bc0add59e62ac25578270cff1b9f619&sellAmount=1000000&sellToken=0x2791bca1f2de4661ed88a30c99a7a9449aa84174
        """
        try:
            return await self._fetch_quote(request)
        except InsufficientLiquidityError:
            return None

    async def _fetch_quote(self, request: SwapRequest) -> dict:
        chain_id = request.input.chain_id
        url = self._api_path_builder('swap', 'quote', chain_id)
        query = self._convert_params(request)
        logger.debug(f'Proxing url {url} with params {query}')
        try:
            response = await self._get_response(url, params=query)
        except (
            ClientResponseError,
            asyncio.TimeoutError,
            ServerDisconnectedError,
        ) as e:
            raise self.handle_exception(e, query=query, method='get_quote', chain_id=chain_id)
        return response

    async def build_candidate(self, request: SwapRequest) -> Optional[Candidate]:
        try:
            response = await self._fetch_quote(request)
        except InsufficientLiquidityError:
            logger.info('No liquidity on %s for chain %s', self.PROVIDER_NAME, request.input.chain_id)
            return None
        if not response:
            return None
        try:
            quote = ZeroXQuoteResponse.model_validate(response)
        except ValidationError as e:
            raise self.handle_exception(e, response=response)
        return self._convert_response_to_candidate(quote, request)

    def _convert_response_to_candidate(
        self, quote: ZeroXQuoteResponse, request: SwapRequest
    ) -> Optional[Candidate]:
        chain_id = request.input.chain_id
        if (
            quote.sell_token_address.lower() != self._token_address(request.input.address)
            or quote.buy_token_address.lower() != self._token_address(request.output.address)
        ):
            raise self.handle_exception(
                ParseResponseError(self.PROVIDER_NAME, 'Quote tokens do not match the request')
            )
        if not to_atomic_amount(quote.buy_amount):
            return None
        self.check_router(chain_id, quote.to)
        gas = to_atomic_amount(quote.gas)
        estimate = build_step_estimate(
            request.input,
            request.output,
            input_atomic=quote.sell_amount,
            output_atomic=quote.buy_amount,
            gas_cost_atomic=gas * to_atomic_amount(quote.gas_price),
            fee_cost_atomic=quote.protocol_fee,
            slippage=request.max_slippage / 10_000,
            price_impact=float(quote.estimated_price_impact or 0),
        )
        step = SwapStep(
            type=StepType.SWAP,
            description='Swap via 0x',
            input=request.input,
            output=request.output,
            input_chain_id=chain_id,
            output_chain_id=chain_id,
            payer=request.payer,
            receiver=request.receiver,
            protocol=ProtocolModel(id=self.PROVIDER_NAME, name='0x Protocol', type=ProtocolType.AGGREGATOR),
            estimate=estimate,
        )
        candidate = Candidate(
            provider=self.PROVIDER_NAME,
            to=quote.to,
            data=quote.data,
            value=to_atomic_amount(quote.value),
            from_address=request.payer,
            chain_id=chain_id,
            approval_address=quote.allowance_target or self.get_approval_address(chain_id),
            gas_limit=gas or None,
            steps=[step],
            request=request,
        )
        return add_estimates_to_candidate(candidate)

    def handle_response_error(
        self, exception: ClientResponseError, **kwargs
    ) -> BaseAggregationProviderError:
        """
        exception.message: [
            {
                "code": 100,
                "reason": "Validation Failed",
                "validationErrors": [
                    {
                        "field": "buyAmount",
                        "code": 1004,
                        "reason": "INSUFFICIENT_ASSET_LIQUIDITY"
                    }
                ]
            }
        ]
        or
        exception.message: [
            {
                "code": 105,
                "reason": "Transaction Invalid",
                "values": {
                    "message": "execution reverted",
                }
            }
        ]
        """
        msg = exception.message
        if isinstance(exception.message, list) and isinstance(exception.message[0], dict):
            msg = exception.message[0]
            if msg.get('validationErrors'):
                msg = {err.get('field'): err.get('reason') for err in msg['validationErrors']}
            else:
                msg = msg.get('values', msg).get('message', msg.get('reason', msg))

        for error, error_class in ZERO_X_ERRORS.items():
            if re.search(error.lower(), str(msg).lower()):
                break
        else:
            error_class = AggregationProviderError
        return error_class(
            self.PROVIDER_NAME,
            str(msg),
            url=str(exception.request_info.url) if exception.request_info else None,
            **kwargs,
        )
