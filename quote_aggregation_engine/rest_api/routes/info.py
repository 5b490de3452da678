from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query

from quote_aggregation_engine.models.chain import ChainProvidersModel, ProviderKind
from quote_aggregation_engine.rest_api import dependencies

info_route = APIRouter()

KIND_QUERY = Query(None, description='Only providers of this kind, e.g. "http" for ready-to-send quotes')


@info_route.get('/', response_model=List[ChainProvidersModel])
@info_route.get('', include_in_schema=False)
async def get_all_info(
    kind: Optional[ProviderKind] = KIND_QUERY,
    providers: dependencies.ProvidersConfig = Depends(dependencies.providers),
):
    """
    Lists the enabled providers grouped by chain.

    Each provider entry carries its router and approval addresses, its kind
    and whether it can append contract calls to a route.
    """
    return providers.get_all_providers(kind=kind)


@info_route.get(
    '/{chain_id}',
    response_model=ChainProvidersModel,
    response_model_exclude={'chain_id'},
    responses={404: {'description': 'No enabled provider on the chain'}},
)
@info_route.get(
    '/{chain_id}/',
    include_in_schema=False,
    response_model=ChainProvidersModel,
    response_model_exclude={'chain_id'},
)
async def get_info(
    chain_id: int = Path(..., description='Chain ID'),
    kind: Optional[ProviderKind] = KIND_QUERY,
    providers: dependencies.ProvidersConfig = Depends(dependencies.providers),
) -> ChainProvidersModel:
    try:
        return providers.get_providers_on_chain(chain_id, kind=kind)
    except ValueError:
        raise HTTPException(status_code=404, detail='Chain ID not found')
