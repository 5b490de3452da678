import asyncio
from pathlib import Path
from typing import Optional

import ujson
from aiohttp import ClientResponseError, ServerDisconnectedError
from pydantic import ValidationError

from quote_aggregation_engine.models.chain import TokenModel
from quote_aggregation_engine.models.meta_agg_models import (
    Candidate,
    OpStatus,
    ProtocolModel,
    ProtocolType,
    StatusRequest,
    StatusResponse,
    StepType,
    SwapRequest,
    SwapStep,
)
from quote_aggregation_engine.models.provider_response_models import (
    LiFiQuoteResponse,
    LiFiStatusResponse,
    LiFiStep,
    LiFiToken,
)
from quote_aggregation_engine.providers.base_provider import BaseProvider
from quote_aggregation_engine.services.estimates import (
    add_estimates_to_candidate,
    build_step_estimate,
    sum_costs,
    to_atomic_amount,
)
from quote_aggregation_engine.utils.errors import (
    AggregationProviderError,
    InsufficientLiquidityError,
    ParseResponseError,
)
from quote_aggregation_engine.utils.logger import get_logger

logger = get_logger(__name__)

STEP_TYPES = {
    'swap': StepType.SWAP,
    'cross': StepType.BRIDGE,
    'lifi': StepType.CROSS_CHAIN_SWAP,
    'protocol': StepType.CONTRACT_CALL,
}

STATUSES = {
    'DONE': OpStatus.DONE,
    'PENDING': OpStatus.PENDING,
    'FAILED': OpStatus.FAILED,
    'NOT_FOUND': OpStatus.NOT_FOUND,
}

# LI.FI answers 404 with code 1002 when no route matches the request
NO_ROUTE_CODES = (1002, 1011)


class LiFiProviderV1(BaseProvider):
    """https://apidocs.li.fi/reference/welcome-to-the-lifinance-api"""

    CONFIG_PATH = Path(__file__).parent / 'config.json'

    with open(CONFIG_PATH) as f:
        PROVIDER_NAME = ujson.load(f)['name']

    def _headers(self) -> dict:
        headers = super()._headers()
        if self.provider_config.api_key:
            headers['x-lifi-api-key'] = self.provider_config.api_key
        return headers

    def _convert_params(self, request: SwapRequest) -> dict:
        params = {
            'fromChain': str(request.input.chain_id),
            'fromToken': request.input.address or self.config.ZERO_ADDRESS,
            'fromAddress': request.payer,
            'fromAmount': str(request.input_amount),
            'toChain': self._chain_alias(request.output.chain_id),
            'toToken': request.output.address or self.config.ZERO_ADDRESS,
            'toAddress': request.receiver or request.payer,
            'integrator': self.integrator(request),
            'order': 'RECOMMENDED',
            'slippage': request.max_slippage / 10_000,
        }
        referrer = self.referrer(request)
        if referrer:
            params['referrer'] = referrer
        if self.provider_config.fee_bps:
            params['fee'] = self.provider_config.fee_bps / 10_000
        if request.bridge_blacklist:
            params['denyBridges'] = ','.join(request.bridge_blacklist)
        if request.exchange_blacklist:
            params['denyExchanges'] = ','.join(request.exchange_blacklist)
        return params

    def _convert_contract_calls_params(self, request: SwapRequest) -> dict:
        params = self._convert_params(request)
        return {
            'fromChain': request.input.chain_id,
            'fromToken': params['fromToken'],
            'fromAddress': params['fromAddress'],
            'fromAmount': params['fromAmount'],
            'toChain': request.output.chain_id,
            'toToken': params['toToken'],
            'integrator': params['integrator'],
            'slippage': params['slippage'],
            'contractCalls': [
                {
                    'fromAmount': params['fromAmount'],
                    'fromTokenAddress': params['toToken'],
                    'toContractAddress': call.to_address,
                    'toContractCallData': call.call_data,
                    'toContractGasLimit': str(call.gas_limit or 0),
                }
                for call in request.custom_contract_calls
            ],
        }

    def _chain_alias(self, chain_id: int) -> str:
        spender = self.provider_config.get_spender(chain_id)
        return spender.alias if spender and spender.alias else str(chain_id)

    async def get_quote(self, request: SwapRequest) -> Optional[dict]:
        return await self._fetch_quote(request)

    async def _fetch_quote(self, request: SwapRequest) -> Optional[dict]:
        self.ensure_chain_supported(request.input.chain_id)
        try:
            if request.custom_contract_calls:
                body = self._convert_contract_calls_params(request)
                response = await self._post_response(f'{self.api_root}/quote/contractCalls', json=body)
            else:
                params = self._convert_params(request)
                response = await self._get_response(f'{self.api_root}/quote', params)
        except (
            ClientResponseError,
            asyncio.TimeoutError,
            ServerDisconnectedError,
        ) as e:
            if isinstance(e, ClientResponseError) and self._is_no_route(e):
                logger.info('No route found on %s for chain %s', self.PROVIDER_NAME, request.input.chain_id)
                return None
            raise self.handle_exception(e, token_address=request.input.address, chain_id=request.input.chain_id)
        return response

    async def build_candidate(self, request: SwapRequest) -> Optional[Candidate]:
        response = await self._fetch_quote(request)
        if not response:
            return None
        try:
            quote = LiFiQuoteResponse.model_validate(response)
        except ValidationError as e:
            raise self.handle_exception(e, response=response)
        if not quote.transaction_request:
            raise self.handle_exception(
                ParseResponseError(self.PROVIDER_NAME, 'Quote has no transaction request')
            )
        return self._convert_response_to_candidate(quote, request)

    def _convert_response_to_candidate(
        self, quote: LiFiQuoteResponse, request: SwapRequest
    ) -> Optional[Candidate]:
        if not to_atomic_amount(quote.estimate.from_amount) or not to_atomic_amount(
            quote.estimate.to_amount_min or quote.estimate.to_amount
        ):
            raise self.handle_exception(
                AggregationProviderError(self.PROVIDER_NAME, 'Invalid quote: zero input or output amount')
            )
        transaction = quote.transaction_request
        chain_id = quote.action.from_chain_id
        self.check_router(chain_id, transaction.to)
        steps = [self._convert_step(step) for step in quote.included_steps or [quote]]
        candidate = Candidate(
            provider=self.PROVIDER_NAME,
            to=transaction.to,
            data=transaction.data,
            value=to_atomic_amount(transaction.value),
            from_address=transaction.from_address or request.payer,
            chain_id=transaction.chain_id or chain_id,
            approval_address=quote.estimate.approval_address or self.get_approval_address(chain_id) or transaction.to,
            gas_limit=to_atomic_amount(transaction.gas_limit) or None,
            custom_data={'lifi_quote_id': quote.id, 'tool': quote.tool},
            steps=steps,
            request=request,
        )
        return add_estimates_to_candidate(candidate)

    @staticmethod
    def _convert_token(token: LiFiToken) -> TokenModel:
        return TokenModel(
            chain_id=token.chain_id,
            address=token.address,
            symbol=token.symbol,
            decimals=token.decimals,
            name=token.name,
            price_usd=token.price_usd,
            logo=token.logo_uri,
        )

    def _convert_step(self, step: LiFiStep) -> SwapStep:
        input_token = self._convert_token(step.action.from_token)
        output_token = self._convert_token(step.action.to_token)
        tool = step.tool_details
        tool_name = (tool.name if tool else None) or step.tool or ''
        estimate = build_step_estimate(
            input_token,
            output_token,
            input_atomic=step.estimate.from_amount,
            output_atomic=step.estimate.to_amount,
            gas_cost_atomic=sum_costs(step.estimate.gas_costs, 'amount'),
            gas_cost_usd=sum_costs(step.estimate.gas_costs, 'amount_usd', usd=True),
            fee_cost_atomic=sum_costs(step.estimate.fee_costs, 'amount'),
            fee_cost_usd=sum_costs(step.estimate.fee_costs, 'amount_usd', usd=True),
            slippage=step.action.slippage or 0,
        )
        return SwapStep(
            id=step.id,
            type=STEP_TYPES.get(step.type, StepType.TRANSFER),
            description=f'{tool_name or "Step"} via LiFi',
            input=input_token,
            output=output_token,
            input_chain_id=step.action.from_chain_id,
            output_chain_id=step.action.to_chain_id,
            payer=step.action.from_address,
            receiver=step.action.to_address,
            protocol=ProtocolModel(
                id=(tool.key if tool else None) or step.tool or '',
                name=tool_name,
                type=ProtocolType.DEX if step.type == 'swap' else ProtocolType.BRIDGE,
                logo=tool.logo_uri if tool else None,
            ),
            estimate=estimate,
        )

    async def get_status(self, params: StatusRequest) -> Optional[StatusResponse]:
        """
        Docs: https://apidocs.li.fi/reference/get_status

        A transaction LI.FI has not indexed yet is reported as not found.
        """
        if not params.tx_hash:
            raise AggregationProviderError(self.PROVIDER_NAME, 'Transaction hash is required')
        query = {'txHash': params.tx_hash}
        if params.input_chain_id:
            query['fromChain'] = params.input_chain_id
        if params.output_chain_id:
            query['toChain'] = params.output_chain_id
        try:
            response = await self._get_response(f'{self.api_root}/status', query)
        except ClientResponseError as e:
            if e.status == 404:
                return StatusResponse(
                    id=params.tx_hash,
                    status=OpStatus.NOT_FOUND,
                    substatus_message='Transaction not found by LiFi API.',
                )
            raise self.handle_exception(e, query=query)
        except (asyncio.TimeoutError, ServerDisconnectedError) as e:
            raise self.handle_exception(e, query=query)
        try:
            status = LiFiStatusResponse.model_validate(response)
        except ValidationError as e:
            raise self.handle_exception(e, response=response)
        return self._convert_status(status, params)

    @staticmethod
    def _convert_status(status: LiFiStatusResponse, params: StatusRequest) -> StatusResponse:
        sending_tx = status.sending.tx_hash if status.sending else None
        receiving_tx = status.receiving.tx_hash if status.receiving else None
        status_name = (status.status or '').upper()
        if status_name == 'NOT_FOUND' and sending_tx == params.tx_hash:
            return StatusResponse(
                id=params.tx_hash,
                status=OpStatus.PENDING,
                substatus_message='Transaction found but bridging/receiving status unknown.',
                sending_tx=sending_tx,
            )
        return StatusResponse(
            id=status.transaction_id or params.tx_hash,
            status=STATUSES.get(status_name, OpStatus.PENDING),
            substatus=status.substatus,
            substatus_message=status.substatus_message,
            tx_hash=sending_tx,
            sending_tx=sending_tx,
            receiving_tx=receiving_tx,
        )

    @staticmethod
    def _error_body(exception: ClientResponseError) -> dict:
        """
        exception.message: [{"message": "No available quotes for the requested transfer", "code": 1002}]
        """
        body = exception.message[0] if isinstance(exception.message, list) and exception.message else {}
        return body if isinstance(body, dict) else {}

    def _is_no_route(self, exception: ClientResponseError) -> bool:
        return self._error_body(exception).get('code') in NO_ROUTE_CODES

    def handle_response_error(self, exception: ClientResponseError, **kwargs):
        if self._is_no_route(exception):
            return InsufficientLiquidityError(self.PROVIDER_NAME, self._error_body(exception).get('message'), **kwargs)
        return super().handle_response_error(exception, **kwargs)
