import asyncio
from typing import Iterable, Optional

import aiohttp

from quote_aggregation_engine.clients.apm_client import ApmClient
from quote_aggregation_engine.config import Config
from quote_aggregation_engine.config.providers import ProvidersConfig
from quote_aggregation_engine.models.meta_agg_models import (
    Candidate,
    StatusRequest,
    StatusResponse,
    SwapRequest,
)
from quote_aggregation_engine.providers import ProviderRegistry
from quote_aggregation_engine.providers.base_provider import ProviderAdapter
from quote_aggregation_engine.services.ranking import RankedCandidates
from quote_aggregation_engine.services.request_normalizer import normalize_request
from quote_aggregation_engine.utils.common import (
    candidate_to_string,
    request_to_string,
    with_latency,
)
from quote_aggregation_engine.utils.errors import (
    BaseAggregationProviderError,
    NoRouteFound,
    ProviderNotFound,
    ProviderTimeoutError,
    UnsupportedChainError,
)
from quote_aggregation_engine.utils.logger import (
    LogArgs,
    capture_exception,
    get_logger,
    provider_context,
)

logger = get_logger(__name__)

PHASE_BUILD = 'build'
PHASE_STATUS = 'status'


class MetaAggregationService:
    def __init__(
        self,
        *,
        config: Config,
        providers: ProvidersConfig,
        session: aiohttp.ClientSession,
        apm_client: ApmClient,
        provider_registry: ProviderRegistry,
    ):
        self.provider_registry = provider_registry
        self.config = config
        self.providers = providers
        self.session = session
        self.apm_client = apm_client

    def get_provider(self, provider_name: str) -> ProviderAdapter:
        provider = self.provider_registry.get(provider_name)
        if not provider:
            raise ProviderNotFound(provider_name, f'Provider {provider_name} is not registered')
        return provider

    async def _build_timed_candidate(
        self,
        provider: ProviderAdapter,
        request: SwapRequest,
        expiry_ms: int,
    ) -> Optional[Candidate]:
        """
        Runs one provider under the call deadline. The deadline cancels the
        provider coroutine together with its HTTP request.
        """
        provider_context.set(provider.PROVIDER_NAME)
        candidate, latency_ms = await asyncio.wait_for(
            with_latency(provider.build_candidate(request)),
            timeout=expiry_ms / 1000,
        )
        if candidate is None:
            return None
        update = {'latency_ms': latency_ms}
        if not candidate.provider:
            update['provider'] = provider.PROVIDER_NAME
        if candidate.data and not candidate.from_address:
            update['from_address'] = request.payer
        return candidate.model_copy(update=update)

    def _log_provider_failure(
        self,
        provider_name: str,
        error: BaseException,
        request: SwapRequest,
        expiry_ms: int,
    ) -> None:
        extra = {
            LogArgs.aggregation_provider: provider_name,
            LogArgs.phase: PHASE_BUILD,
            LogArgs.request: request_to_string(request),
        }
        if isinstance(error, asyncio.TimeoutError):
            logger.warning(
                'Provider %s timed out after %s ms', provider_name, expiry_ms,
                extra={**extra, LogArgs.expiry_ms: expiry_ms},
            )
        elif isinstance(error, UnsupportedChainError):
            logger.info('Provider %s skipped: %s', provider_name, error, extra=extra)
        elif isinstance(error, BaseAggregationProviderError):
            logger.warning(
                'Provider %s failed: %s', provider_name, error,
                extra={**extra, **error.to_dict(), LogArgs.ex: repr(error)},
            )
        else:
            capture_exception(
                self.apm_client, (type(error), error, error.__traceback__),
                provider=provider_name, phase=PHASE_BUILD,
            )
            logger.error(
                'Provider %s raised an unexpected error: %s', provider_name, error,
                extra={**extra, LogArgs.ex: repr(error)},
            )

    async def fan_out(
        self,
        request: SwapRequest,
        provider_names: Iterable[str],
        expiry_ms: int,
    ) -> list[Candidate]:
        """
        Queries every provider concurrently and keeps the candidates that
        arrive before the deadline.

        A failing, timed out or route-less provider produces no candidate and
        never affects the others.

        Args:
            request: normalized swap request, shared read-only by the providers
            provider_names: providers to query, in dispatch order
            expiry_ms: deadline of each provider call

        Returns:
            Candidates in dispatch order, unsorted

        Raises:
            NoRouteFound: when no provider returned a candidate
        """
        provider_names = list(provider_names)
        chain_id = request.input.chain_id
        dispatched = []
        tasks = []
        for name in provider_names:
            provider = self.provider_registry.get(name)
            if not provider:
                logger.warning('Unknown provider %s skipped', name, extra={LogArgs.aggregation_provider: name})
                continue
            if not provider.supports_chain(chain_id):
                logger.info(
                    'Provider %s does not support chain %s', name, chain_id,
                    extra={LogArgs.aggregation_provider: name, LogArgs.chain_id: chain_id},
                )
                continue
            dispatched.append(name)
            tasks.append(
                asyncio.create_task(self._build_timed_candidate(provider, request, expiry_ms))
            )

        results = await asyncio.gather(*tasks, return_exceptions=True)
        candidates = []
        for name, result in zip(dispatched, results):
            if isinstance(result, BaseException):
                self._log_provider_failure(name, result, request, expiry_ms)
                continue
            if result is None:
                logger.info('No route from %s', name, extra={LogArgs.aggregation_provider: name})
                continue
            candidates.append(result)

        if not candidates:
            summary = request_to_string(request)
            logger.error(
                'No viable routes found for %s', summary,
                extra={LogArgs.providers: provider_names, LogArgs.expiry_ms: expiry_ms},
            )
            raise NoRouteFound(summary, provider_names)
        return candidates

    async def get_ranked_candidates(self, request: SwapRequest) -> RankedCandidates:
        """
        Normalizes the request, fans it out to its providers and ranks the
        candidates by exchange rate, best first.

        Raises:
            InvalidParameter: malformed request
            NoRouteFound: no provider returned a candidate
        """
        request = normalize_request(request, self.config)
        candidates = await self.fan_out(request, request.providers, request.expiry_ms)
        ranked = RankedCandidates(candidates)
        logger.info(
            '%s routes found for %s (best: %s)',
            len(ranked), request_to_string(request), ranked.best().provider,
            extra={
                LogArgs.candidates_count: len(ranked),
                LogArgs.chain_id: request.input.chain_id,
                LogArgs.performances: [row.model_dump() for row in ranked.performances()],
            },
        )
        for candidate in ranked:
            logger.info(candidate_to_string(candidate))
        return ranked

    async def get_best_candidate(self, request: SwapRequest) -> Candidate:
        ranked = await self.get_ranked_candidates(request)
        return ranked.best()

    async def get_call_data(self, request: SwapRequest) -> str:
        ranked = await self.get_ranked_candidates(request)
        return ranked.call_data()

    async def get_provider_candidate(self, request: SwapRequest, provider: str) -> Optional[Candidate]:
        """
        Single-provider call. Unlike the fan-out, provider errors are raised
        to the caller.

        Raises:
            ProviderNotFound: provider is not registered
            UnsupportedChainError: provider has no router on the input chain
            ProviderTimeoutError: provider did not answer before the deadline
        """
        provider_instance = self.get_provider(provider)
        request = normalize_request(request, self.config, provider_name=provider)
        chain_id = request.input.chain_id
        if not provider_instance.supports_chain(chain_id):
            raise UnsupportedChainError(provider, f'Chain ID {chain_id} is not supported', chain_id=chain_id)
        try:
            return await self._build_timed_candidate(provider_instance, request, request.expiry_ms)
        except asyncio.TimeoutError:
            raise ProviderTimeoutError(
                provider, f'No answer after {request.expiry_ms} ms', phase=PHASE_BUILD,
            )

    async def get_status(self, provider: str, params: StatusRequest) -> Optional[StatusResponse]:
        provider_instance = self.get_provider(provider)
        logger.debug(
            'Getting status of %s', params.tx_hash or params.tx_id,
            extra={LogArgs.aggregation_provider: provider, LogArgs.phase: PHASE_STATUS},
        )
        return await provider_instance.get_status(params)
