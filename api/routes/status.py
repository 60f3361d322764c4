from fastapi import APIRouter, Depends
from datetime import datetime, timezone

from api.dependencies import get_services
from api.models.responses import CacheStatusResponse, ChainResponse, ErrorResponse, OrjsonResponse
from services.service_container import ServiceContainer

router = APIRouter(tags=["status"])

@router.get("/chains/{chain_id}", response_model=ChainResponse,
            responses={404: {"model": ErrorResponse}, 502: {"model": ErrorResponse}})
async def get_chain(chain_id: int, services: ServiceContainer = Depends(get_services)):
    """Resolve a chain id against the chain catalog"""
    chain = await services.registry.get_chain(chain_id)
    return OrjsonResponse({"success": True, "data": chain.to_dict()})

@router.get("/status/cache", response_model=CacheStatusResponse)
async def get_cache_status(services: ServiceContainer = Depends(get_services)):
    """Token metadata cache metrics plus catalog and endpoint pool state"""
    info = await services.get_service_info()
    service_info = info["services"]
    return OrjsonResponse({
        "success": True,
        "token_cache": service_info.get("token_cache", {}),
        "chain_registry": service_info.get("chain_registry"),
        "rpc_pool": service_info.get("rpc_pool"),
        "timestamp": datetime.now(timezone.utc).isoformat()
    })
