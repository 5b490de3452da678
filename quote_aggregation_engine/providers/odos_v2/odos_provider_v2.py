import asyncio
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
from quote_aggregation_engine.models.provider_response_models import (
    OdosAssembleResponse,
    OdosQuoteResponse,
)
from quote_aggregation_engine.providers.base_provider import BaseProvider
from quote_aggregation_engine.services.estimates import (
    add_estimates_to_candidate,
    build_step_estimate,
    to_atomic_amount,
)
from quote_aggregation_engine.utils.common import is_native_address
from quote_aggregation_engine.utils.logger import get_logger

logger = get_logger(__name__)


class OdosProviderV2(BaseProvider):
    """
    https://docs.odos.xyz/product/sor/v2/api-reference

    Two calls per route: the quote returns a path id, the assemble call turns
    the path into a transaction for the payer.
    """

    CONFIG_PATH = Path(__file__).parent / 'config.json'

    with open(CONFIG_PATH) as f:
        PROVIDER_NAME = ujson.load(f)['name']

    def _headers(self) -> dict:
        headers = super()._headers()
        if self.provider_config.api_key:
            headers['x-api-key'] = self.provider_config.api_key
        return headers

    def _convert_params(self, request: SwapRequest) -> dict:
        referrer = self.referrer(request)
        return {
            'chainId': request.input.chain_id,
            'inputTokens': [{
                'tokenAddress': self._token_address(request.input.address),
                'amount': str(request.input_amount),
            }],
            'outputTokens': [{
                'tokenAddress': self._token_address(request.output.address),
                'proportion': 1,
            }],
            'slippageLimitPercent': request.max_slippage / 100,  # 100 bps == 1%
            'userAddr': request.payer,
            'referralCode': int(referrer) if referrer and referrer.isdigit() else 0,
            'compact': True,
        }

    def _token_address(self, address: Optional[str]) -> str:
        return self.config.ZERO_ADDRESS if is_native_address(address) else address

    async def _request(self, endpoint: str, body: dict, request: SwapRequest) -> dict:
        url = f'{self.api_root}/sor/{endpoint}'
        try:
            return await self._post_response(url, json=body)
        except (
            ClientResponseError,
            asyncio.TimeoutError,
            ServerDisconnectedError,
        ) as e:
            raise self.handle_exception(
                e, body=body, endpoint=endpoint, chain_id=request.input.chain_id
            )

    async def get_quote(self, request: SwapRequest) -> Optional[dict]:
        return await self._fetch_quote(request)

    async def _fetch_quote(self, request: SwapRequest) -> Optional[dict]:
        self.ensure_chain_supported(request.input.chain_id)
        response = await self._request('quote/v2', self._convert_params(request), request)
        if not response.get('pathId'):
            logger.info('No path found on %s for chain %s', self.PROVIDER_NAME, request.input.chain_id)
            return None
        return response

    async def build_candidate(self, request: SwapRequest) -> Optional[Candidate]:
        response = await self._fetch_quote(request)
        if not response:
            return None
        try:
            quote = OdosQuoteResponse.model_validate(response)
        except ValidationError as e:
            raise self.handle_exception(e, response=response)

        assembled = await self._request(
            'assemble',
            {'userAddr': request.payer, 'pathId': quote.path_id, 'simulate': False},
            request,
        )
        try:
            assembled = OdosAssembleResponse.model_validate(assembled)
        except ValidationError as e:
            raise self.handle_exception(e, response=assembled)
        return self._convert_response_to_candidate(quote, assembled, request)

    def _convert_response_to_candidate(
        self,
        quote: OdosQuoteResponse,
        assembled: OdosAssembleResponse,
        request: SwapRequest,
    ) -> Optional[Candidate]:
        if not quote.out_amounts or not to_atomic_amount(quote.out_amounts[0]):
            return None
        transaction = assembled.transaction
        chain_id = request.input.chain_id
        if transaction.from_address and transaction.from_address.lower() != request.payer:
            logger.warning(
                'Payer mismatch on %s: requested %s, assembled for %s',
                self.PROVIDER_NAME, request.payer, transaction.from_address,
            )
        self.check_router(chain_id, transaction.to)
        gas = int(quote.gas_estimate)
        estimate = build_step_estimate(
            request.input,
            request.output,
            input_atomic=quote.in_amounts[0],
            output_atomic=quote.out_amounts[0],
            gas_cost_atomic=gas * int(quote.gwei_per_gas * 10 ** 9),
            gas_cost_usd=quote.gas_estimate_value,
            slippage=request.max_slippage / 10_000,
            price_impact=abs(quote.price_impact or 0) / 100,
        )
        step = SwapStep(
            type=StepType.SWAP,
            description='Swap via Odos',
            input=request.input,
            output=request.output,
            input_chain_id=chain_id,
            output_chain_id=request.output.chain_id,
            payer=request.payer,
            receiver=request.receiver,
            protocol=ProtocolModel(id=self.PROVIDER_NAME, name='Odos', type=ProtocolType.AGGREGATOR),
            estimate=estimate,
        )
        candidate = Candidate(
            provider=self.PROVIDER_NAME,
            to=transaction.to,
            data=transaction.data,
            value=to_atomic_amount(transaction.value),
            from_address=transaction.from_address or request.payer,
            chain_id=chain_id,
            approval_address=self.get_approval_address(chain_id) or transaction.to,
            gas_limit=transaction.gas or None,
            steps=[step],
            request=request,
        )
        return add_estimates_to_candidate(candidate)
