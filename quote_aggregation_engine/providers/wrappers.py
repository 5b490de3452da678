"""
Providers that are declared in config but cannot produce an executable
transaction through the engine. They implement the adapter protocol by
composition, without the HTTP base class.
"""
from typing import Optional

from quote_aggregation_engine.models.chain import ProviderConfigModel
from quote_aggregation_engine.models.meta_agg_models import (
    Candidate,
    StatusRequest,
    StatusResponse,
    SwapRequest,
)
from quote_aggregation_engine.utils.errors import (
    ProviderNotImplementedError,
    SignatureRequiredError,
)


class _ConfiguredProvider:
    def __init__(self, provider_config: ProviderConfigModel):
        self.provider_config = provider_config
        self.PROVIDER_NAME = provider_config.name

    def supports_chain(self, chain_id: int) -> bool:
        return self.provider_config.get_spender(chain_id) is not None

    def get_router_address(self, chain_id: int) -> Optional[str]:
        spender = self.provider_config.get_spender(chain_id)
        return spender.router if spender else None

    def get_approval_address(self, chain_id: int) -> Optional[str]:
        spender = self.provider_config.get_spender(chain_id)
        if not spender:
            return None
        return spender.approval or spender.router

    async def get_quote(self, request: SwapRequest) -> Optional[dict]:
        return None

    async def get_status(self, params: StatusRequest) -> Optional[StatusResponse]:
        return None


class UnimplementedProvider(_ConfiguredProvider):
    """Placeholder for a provider whose integration is not written yet."""

    async def build_candidate(self, request: SwapRequest) -> Optional[Candidate]:
        raise ProviderNotImplementedError(
            self.PROVIDER_NAME, f'{self.provider_config.display_name} integration is not implemented'
        )


class OffchainSignatureProvider(_ConfiguredProvider):
    """
    Intent and RFQ providers settle through an order signed off-chain by the
    payer. The engine never signs, so these providers cannot return a candidate.
    """

    async def build_candidate(self, request: SwapRequest) -> Optional[Candidate]:
        raise SignatureRequiredError(
            self.PROVIDER_NAME,
            f'{self.provider_config.display_name} orders must be signed by the payer',
        )
