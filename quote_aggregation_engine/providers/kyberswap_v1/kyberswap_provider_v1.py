import asyncio
from decimal import Decimal, InvalidOperation
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
from quote_aggregation_engine.models.provider_response_models import KyberSwapResponse
from quote_aggregation_engine.providers.base_provider import BaseProvider
from quote_aggregation_engine.services.estimates import (
    add_estimates_to_candidate,
    build_step_estimate,
)
from quote_aggregation_engine.utils.common import is_native_address
from quote_aggregation_engine.utils.logger import get_logger

logger = get_logger(__name__)

NO_ROUTE_MESSAGES = ('route not found', 'no route', 'insufficient liquidity')


class KyberSwapProviderV1(BaseProvider):
    """https://docs.kyberswap.com/Aggregator/aggregator-api"""

    VERSION = '1'
    CONFIG_PATH = Path(__file__).parent / 'config.json'

    with open(CONFIG_PATH) as f:
        PROVIDER_NAME = ujson.load(f)['name']

    def _headers(self) -> dict:
        return {
            **super()._headers(),
            'Accept-Version': self.VERSION,
            'x-client-id': self.provider_config.integrator or self.config.INTEGRATOR,
        }

    def _convert_params(self, request: SwapRequest) -> dict:
        params = {
            'tokenIn': self._token_address(request.input.address),
            'tokenOut': self._token_address(request.output.address),
            'amountIn': str(request.input_amount),
            'to': request.receiver or request.payer,
            'slippageTolerance': str(request.max_slippage),  # bps, 0.1% == 10
            'clientData': ujson.dumps({'source': self.integrator(request)}),
            'saveGas': '0',
            'gasInclude': '1',
        }
        if self.provider_config.fee_bps and self.referrer(request):
            params['chargeFeeBy'] = 'currency_out'
            params['feeReceiver'] = self.referrer(request)
            params['isInBps'] = 1
            params['feeAmount'] = str(self.provider_config.fee_bps)
        return params

    def _token_address(self, address: Optional[str]) -> str:
        return self.config.NATIVE_TOKEN_ADDRESS if is_native_address(address) else address

    async def _make_request(self, request: SwapRequest) -> dict:
        chain_id = request.input.chain_id
        spender = self.ensure_chain_supported(chain_id)
        url = f'{self.api_root}/{spender.alias}/route/encode'
        params = self._convert_params(request)
        try:
            response = await self._get_response(url, params)
        except (
            ClientResponseError,
            asyncio.TimeoutError,
            ServerDisconnectedError,
        ) as e:
            if isinstance(e, ClientResponseError) and self._is_no_route(e):
                logger.info('No route found on %s for chain %s', self.PROVIDER_NAME, chain_id)
                return {}
            exc = self.handle_exception(
                e, params=params, token_address=request.input.address, chain_id=chain_id
            )
            raise exc
        return response

    @staticmethod
    def _is_no_route(error: ClientResponseError) -> bool:
        message = str(error.message).lower()
        return error.status in (400, 404) and any(msg in message for msg in NO_ROUTE_MESSAGES)

    async def get_quote(self, request: SwapRequest) -> Optional[dict]:
        return await self._make_request(request) or None

    async def build_candidate(self, request: SwapRequest) -> Optional[Candidate]:
        response = await self._make_request(request)
        if not response:
            return None
        try:
            return self._convert_response_to_candidate(KyberSwapResponse.model_validate(response), request)
        except (KeyError, ValueError, InvalidOperation, ValidationError) as e:
            raise self.handle_exception(e, response=response)

    def _convert_response_to_candidate(
        self, response: KyberSwapResponse, request: SwapRequest
    ) -> Optional[Candidate]:
        if not response.encoded_swap_data or not response.router_address or response.output_amount == '0':
            return None
        chain_id = request.input.chain_id
        self.check_router(chain_id, response.router_address)
        gas_price_wei = int(Decimal(response.gas_price_gwei or 0) * 10 ** 9)
        estimate = build_step_estimate(
            request.input,
            request.output,
            input_atomic=response.input_amount,
            output_atomic=response.output_amount,
            gas_cost_atomic=response.total_gas * gas_price_wei,
            gas_cost_usd=response.gas_usd,
            slippage=(request.max_slippage or 0) / 10_000,
        )
        step = SwapStep(
            type=StepType.SWAP,
            description='Swap via KyberSwap',
            input=request.input,
            output=request.output,
            input_chain_id=chain_id,
            output_chain_id=request.output.chain_id,
            payer=request.payer,
            receiver=request.receiver,
            protocol=ProtocolModel(id=self.PROVIDER_NAME, name='KyberSwap', type=ProtocolType.AGGREGATOR),
            estimate=estimate,
        )
        candidate = Candidate(
            provider=self.PROVIDER_NAME,
            to=response.router_address,
            data=response.encoded_swap_data,
            value=request.input_amount if request.input.is_native else 0,
            from_address=request.payer,
            chain_id=chain_id,
            approval_address=self.get_approval_address(chain_id) or response.router_address,
            gas_limit=response.total_gas or None,
            steps=[step],
            request=request,
        )
        return add_estimates_to_candidate(candidate)
