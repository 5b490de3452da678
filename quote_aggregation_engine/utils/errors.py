from collections import defaultdict
from enum import Enum
from typing import ClassVar, Iterable, Optional

from starlette.responses import JSONResponse

from quote_aggregation_engine.utils.logger import LogArgs


class ErrorOwner(str, Enum):
    """Who has to act on an error. Each owner maps to one HTTP status."""

    USER = 'user'
    PROVIDER = 'provider'
    ENGINE = 'engine'


HTTP_CODES = {
    ErrorOwner.USER: 400,
    ErrorOwner.PROVIDER: 409,
    ErrorOwner.ENGINE: 417,
}


class BaseAggregationError(Exception):
    """
    Error of the engine which is answered to the API caller.

    Subclasses set ``msg_to_log`` and ``error_owner``; the HTTP status is
    derived from the owner.
    """

    msg_to_log: ClassVar[str] = 'Aggregation error'
    error_owner: ClassVar[ErrorOwner] = ErrorOwner.ENGINE
    code: ClassVar[int] = HTTP_CODES[ErrorOwner.ENGINE]
    registry: ClassVar[list[type['BaseAggregationError']]] = []

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)
        cls.code = HTTP_CODES[cls.error_owner]
        if 'msg_to_log' in cls.__dict__:
            BaseAggregationError.registry.append(cls)

    def __init__(self, message: Optional[str] = None, **kwargs):
        super().__init__(message)
        self.message = message
        self.kwargs = kwargs

    def __str__(self):
        return f'{self.msg_to_log}: {self.message}' if self.message else self.msg_to_log

    def __repr__(self):
        return f'{self.__class__.__name__}({self.message!r}, {self.kwargs})'

    def to_dict(self) -> dict:
        """Log arguments of the error."""
        return {
            'reason': self.message,
            'error_owner': self.error_owner.value,
            **self.kwargs,
        }

    def http_payload(self) -> dict:
        return {'error': str(self), 'reason': self.message}

    def to_http_exception(self) -> JSONResponse:
        return JSONResponse(self.http_payload(), status_code=self.code)


class InvalidParameter(BaseAggregationError):
    """Swap request is malformed: address, chain id or amount"""
    msg_to_log = 'Invalid swap parameters'
    error_owner = ErrorOwner.USER


class NoRouteFound(BaseAggregationError):
    """Every queried provider failed, timed out or found no route"""
    msg_to_log = 'No viable routes found'
    error_owner = ErrorOwner.PROVIDER

    def __init__(self, request_summary: str, provider_names: Iterable[str], **kwargs):
        self.request_summary = request_summary
        self.provider_names = list(provider_names)
        super().__init__(
            f'{request_summary} across providers: {", ".join(self.provider_names)}',
            **kwargs,
        )

    def to_dict(self) -> dict:
        return {**super().to_dict(), 'providers': self.provider_names}

    def http_payload(self) -> dict:
        return {**super().http_payload(), 'providers': self.provider_names}


class BaseAggregationProviderError(BaseAggregationError):
    """Error raised on behalf of one quote provider."""

    def __init__(self, provider: str, message: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.provider = provider

    def __str__(self):
        return f'{self.msg_to_log}. Source: {self.provider}'

    def __repr__(self):
        return f'{self.__class__.__name__}({self.provider!r}, {self.message!r}, {self.kwargs})'

    def to_dict(self) -> dict:
        return {'provider': self.provider, **super().to_dict()}

    def to_log_args(self) -> tuple[str, dict]:
        """Message and arguments for ``logger.error(*err.to_log_args())``."""
        return (
            f'{self.msg_to_log.lower()}. Source: %({LogArgs.aggregation_provider})s',
            {LogArgs.aggregation_provider: self.provider},
        )

    def http_payload(self) -> dict:
        return {**super().http_payload(), 'provider': self.provider}


class AggregationProviderError(BaseAggregationProviderError):
    """Provider answered with an error we have no mapping for"""
    msg_to_log = 'Unhandled error'
    error_owner = ErrorOwner.PROVIDER


class InsufficientLiquidityError(BaseAggregationProviderError):
    msg_to_log = 'Cannot find a liquidity pools for swap'
    error_owner = ErrorOwner.PROVIDER


class ParseResponseError(BaseAggregationProviderError):
    """Provider answer does not match its documented shape"""
    msg_to_log = 'Cannot parse response'
    error_owner = ErrorOwner.ENGINE


class ProviderTimeoutError(BaseAggregationProviderError):
    msg_to_log = 'Provider is unavailable'
    error_owner = ErrorOwner.PROVIDER


class UnsupportedChainError(BaseAggregationProviderError):
    """Provider has no router on the requested chain"""
    msg_to_log = 'Chain is not supported'
    error_owner = ErrorOwner.USER


class ProviderNotFound(BaseAggregationProviderError):
    msg_to_log = 'Provider not found'
    error_owner = ErrorOwner.ENGINE


class ProviderNotImplementedError(BaseAggregationProviderError):
    """Provider is declared but its integration is not implemented"""
    msg_to_log = 'Provider is not implemented'
    error_owner = ErrorOwner.ENGINE


class SignatureRequiredError(BaseAggregationProviderError):
    """Provider settles through an off-chain signed order"""
    msg_to_log = 'Provider requires an off-chain signature'
    error_owner = ErrorOwner.ENGINE


def error_responses() -> dict:
    """OpenAPI ``responses`` listing the errors answered under each status."""
    messages = defaultdict(list)
    for error_class in BaseAggregationError.registry:
        messages[HTTP_CODES[error_class.error_owner]].append(error_class.msg_to_log)
    return {
        code: {'description': 'One of the following errors:<br><br>' + '<br>'.join(messages[code])}
        for code in sorted(messages)
    }


responses = error_responses()
