from typing import List, Optional

from fastapi import APIRouter, Body, Depends, Path
from pydantic import BaseModel

from quote_aggregation_engine.models.meta_agg_models import Candidate, SwapRequest
from quote_aggregation_engine.rest_api import dependencies
from quote_aggregation_engine.utils.errors import responses

routes_route = APIRouter()


class CallDataResponse(BaseModel):
    data: str


def _from_caller(request: SwapRequest) -> SwapRequest:
    # the flag is internal, a caller cannot skip normalization
    return request.model_copy(update={'normalized': False})


@routes_route.post('', response_model=List[Candidate], responses=responses)
@routes_route.post('/', response_model=List[Candidate], include_in_schema=False)
async def get_routes(
    request: SwapRequest = Body(...),
    meta_aggregation_service: dependencies.MetaAggregationService = Depends(
        dependencies.meta_aggregation_service
    ),
) -> List[Candidate]:
    """
    Queries the providers of the request concurrently and returns their routes,
    best exchange rate first.

    - **input** / **output**: tokens to sell and to buy. Output chain defaults to the input one
    - **input_amount**: amount to sell in base units (e.g. 1 ETH = 10**18)
    - **payer**: address paying the input amount
    - **receiver**: address receiving the output (default: payer)
    - **max_slippage**: basis points (default: 500 = 5%)
    - **providers**: provider names from /info (default: configured list)
    - **expiry_ms**: per provider deadline (default: 5000)
    """
    ranked = await meta_aggregation_service.get_ranked_candidates(_from_caller(request))
    return ranked.candidates


@routes_route.post('/best', response_model=Candidate, responses=responses)
async def get_best_route(
    request: SwapRequest = Body(...),
    meta_aggregation_service: dependencies.MetaAggregationService = Depends(
        dependencies.meta_aggregation_service
    ),
) -> Candidate:
    """Returns the route with the best exchange rate across the providers."""
    return await meta_aggregation_service.get_best_candidate(_from_caller(request))


@routes_route.post('/calldata', response_model=CallDataResponse, responses=responses)
async def get_call_data(
    request: SwapRequest = Body(...),
    meta_aggregation_service: dependencies.MetaAggregationService = Depends(
        dependencies.meta_aggregation_service
    ),
) -> CallDataResponse:
    """Returns only the call data of the best route."""
    data = await meta_aggregation_service.get_call_data(_from_caller(request))
    return CallDataResponse(data=data)


@routes_route.post('/{provider}', response_model=Optional[Candidate], responses=responses)
async def get_provider_route(
    provider: str = Path(..., description='Provider name from /info'),
    request: SwapRequest = Body(...),
    meta_aggregation_service: dependencies.MetaAggregationService = Depends(
        dependencies.meta_aggregation_service
    ),
) -> Optional[Candidate]:
    """
    Returns the route of a single provider, or null when it has no route.
    Errors of the provider are returned as is.
    """
    return await meta_aggregation_service.get_provider_candidate(_from_caller(request), provider)
