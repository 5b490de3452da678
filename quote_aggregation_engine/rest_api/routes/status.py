from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query

from quote_aggregation_engine.models.meta_agg_models import StatusRequest, StatusResponse
from quote_aggregation_engine.rest_api import dependencies
from quote_aggregation_engine.utils.errors import responses

status_route = APIRouter()


@status_route.get(
    '/{provider}',
    response_model=StatusResponse,
    responses={**responses, 404: {'description': 'Status tracking is not supported by the provider'}},
)
async def get_status(
    provider: str = Path(..., description='Provider name from /info'),
    tx_hash: Optional[str] = Query(None, alias='txHash'),
    tx_id: Optional[str] = Query(None, alias='txId'),
    input_chain_id: Optional[int] = Query(None, alias='fromChain'),
    output_chain_id: Optional[int] = Query(None, alias='toChain'),
    meta_aggregation_service: dependencies.MetaAggregationService = Depends(
        dependencies.meta_aggregation_service
    ),
) -> StatusResponse:
    """
    Returns the status of a submitted transaction, as tracked by the provider.

    - **txHash**: hash of the sending transaction
    - **txId**: provider side id of the transfer (optional)
    - **fromChain** / **toChain**: chain ids of the transfer (optional)
    """
    params = StatusRequest(
        tx_hash=tx_hash,
        tx_id=tx_id,
        input_chain_id=input_chain_id,
        output_chain_id=output_chain_id,
    )
    status = await meta_aggregation_service.get_status(provider, params)
    if status is None:
        raise HTTPException(status_code=404, detail=f'Status tracking is not supported by {provider}')
    return status
