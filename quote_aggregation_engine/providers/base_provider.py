import asyncio
import ssl
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Protocol, runtime_checkable

import aiohttp
from aiocache import cached
from aiohttp import ClientResponse, ClientResponseError, ServerDisconnectedError
from pydantic import ValidationError
from web3 import Web3

from quote_aggregation_engine.clients.apm_client import ApmClient
from quote_aggregation_engine.config import Config
from quote_aggregation_engine.config.providers import load_provider_config
from quote_aggregation_engine.models.chain import ProviderConfigModel, SpenderModel
from quote_aggregation_engine.models.meta_agg_models import (
    Candidate,
    StatusRequest,
    StatusResponse,
    SwapRequest,
)
from quote_aggregation_engine.utils.cache import get_cache_config
from quote_aggregation_engine.utils.errors import (
    AggregationProviderError,
    BaseAggregationProviderError,
    ParseResponseError,
    ProviderTimeoutError,
    UnsupportedChainError,
)
from quote_aggregation_engine.utils.logger import capture_exception, get_logger

logger = get_logger(__name__)


@runtime_checkable
class ProviderAdapter(Protocol):
    """What the aggregation service needs from a quote provider."""

    PROVIDER_NAME: str

    def supports_chain(self, chain_id: int) -> bool:
        ...

    async def get_quote(self, request: SwapRequest) -> Optional[dict]:
        ...

    async def build_candidate(self, request: SwapRequest) -> Optional[Candidate]:
        ...

    async def get_status(self, params: StatusRequest) -> Optional[StatusResponse]:
        ...


class BaseProvider(ABC):
    """
    Base class of HTTP quote providers.

    Static provider data (routers, chain aliases, API root) comes from the
    config.json next to the provider module, merged with environment overrides.
    """

    PROVIDER_NAME = 'base_provider'
    CONFIG_PATH: Optional[Path] = None
    REQUEST_TIMEOUT = 7

    def __init__(
        self,
        session: aiohttp.ClientSession,
        config: Config,
        apm_client: Optional[ApmClient] = None,
        provider_config: Optional[ProviderConfigModel] = None,
        **_,
    ):
        self.aiohttp_session = session
        self.config = config
        self.apm_client = apm_client
        self.provider_config = provider_config or load_provider_config(self.CONFIG_PATH)

        self.get_quote = cached(
            ttl=config.QUOTE_CACHE_TTL, **get_cache_config(config)
        )(self.get_quote)

    @property
    def api_root(self) -> str:
        return self.provider_config.api_root

    def supports_chain(self, chain_id: int) -> bool:
        return self.provider_config.get_spender(chain_id) is not None

    def ensure_chain_supported(self, chain_id: int) -> SpenderModel:
        spender = self.provider_config.get_spender(chain_id)
        if not spender:
            raise UnsupportedChainError(self.PROVIDER_NAME, f'Chain ID {chain_id} is not supported', chain_id=chain_id)
        return spender

    def get_router_address(self, chain_id: int) -> Optional[str]:
        spender = self.provider_config.get_spender(chain_id)
        return spender.router if spender else None

    def get_approval_address(self, chain_id: int) -> Optional[str]:
        spender = self.provider_config.get_spender(chain_id)
        if not spender:
            return None
        return spender.approval or spender.router

    def check_router(self, chain_id: int, router: str) -> None:
        """Warns when the provider routes through a contract not listed in its config."""
        expected = self.get_router_address(chain_id)
        if expected and Web3.to_checksum_address(expected) != Web3.to_checksum_address(router):
            logger.warning(
                'Router address mismatch for %s: expected %s, got %s',
                self.PROVIDER_NAME, expected, router,
            )

    def integrator(self, request: SwapRequest) -> str:
        return request.integrator or self.provider_config.integrator or self.config.INTEGRATOR

    def referrer(self, request: SwapRequest) -> Optional[str]:
        return request.referrer or self.provider_config.referrer

    def _headers(self) -> dict:
        return {'accept': 'application/json'}

    async def _read_response(self, response: ClientResponse) -> dict:
        logger.debug(f'Request {response.method} {response.url}')
        data = await response.json(content_type=None)
        try:
            response.raise_for_status()
        except ClientResponseError as e:
            # Fix bug with HTTP status code 0.
            status = 500 if e.status not in range(100, 600) else e.status
            if isinstance(data, dict):
                data['source'] = f'proxied {self.provider_config.display_name} API'
            raise ClientResponseError(
                request_info=e.request_info,
                history=e.history,
                status=status,
                # expected str, list and dict also work.
                message=[data],
                headers=e.headers,
            )
        return data

    async def _get_response(self, url: str, params: Optional[dict] = None) -> dict:
        async with self.aiohttp_session.get(
            url,
            params=params,
            headers=self._headers(),
            timeout=aiohttp.ClientTimeout(total=self.REQUEST_TIMEOUT),
            ssl=ssl.create_default_context(),
        ) as response:
            return await self._read_response(response)

    async def _post_response(self, url: str, json: Optional[dict] = None) -> dict:
        async with self.aiohttp_session.post(
            url,
            json=json,
            headers={**self._headers(), 'content-type': 'application/json'},
            timeout=aiohttp.ClientTimeout(total=self.REQUEST_TIMEOUT),
            ssl=ssl.create_default_context(),
        ) as response:
            return await self._read_response(response)

    async def get_quote(self, request: SwapRequest) -> Optional[dict]:
        """
        Raw provider quote for the request, if the provider has a separate
        quote endpoint. Results are cached for a few seconds.
        """
        return None

    @abstractmethod
    async def build_candidate(self, request: SwapRequest) -> Optional[Candidate]:
        """
        Converts the request to the provider's format, calls the provider and
        builds a Candidate with per-step and global estimates.

        Args:
            request: normalized swap request

        Returns:
            Candidate or None if the provider has no route for the request.

        Raises:
            Type[BaseAggregationProviderError]: on transport, parsing or contract errors
        """

    async def get_status(self, params: StatusRequest) -> Optional[StatusResponse]:
        return None

    def handle_response_error(
        self, exception: ClientResponseError, **kwargs
    ) -> BaseAggregationProviderError:
        """Maps an HTTP error answer of the provider. Overridden by providers with typed errors."""
        return AggregationProviderError(self.PROVIDER_NAME, str(exception.message), **kwargs)

    def handle_exception(
        self, exception: Exception, **kwargs
    ) -> BaseAggregationProviderError:
        capture_exception(self.apm_client, provider=self.PROVIDER_NAME)
        if isinstance(exception, BaseAggregationProviderError):
            exc = exception
        elif isinstance(exception, (KeyError, ValueError, ValidationError)):
            exc = ParseResponseError(self.PROVIDER_NAME, str(exception), **kwargs)
        elif isinstance(exception, (ServerDisconnectedError, asyncio.TimeoutError)):
            exc = ProviderTimeoutError(self.PROVIDER_NAME, str(exception), **kwargs)
        elif isinstance(exception, ClientResponseError):
            exc = self.handle_response_error(exception, **kwargs)
        else:
            exc = AggregationProviderError(self.PROVIDER_NAME, str(exception), **kwargs)
        logger.error(*exc.to_log_args(), extra=exc.to_dict())
        return exc
