from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional
from datetime import datetime

from fastapi.responses import JSONResponse

from utils.json_utils import orjson_dumps, sanitize_for_orjson

class OrjsonResponse(JSONResponse):
    """JSON response rendered with orjson; oversized integers become strings"""

    def render(self, content: Any) -> bytes:
        return orjson_dumps(sanitize_for_orjson(content))

class ErrorDetail(BaseModel):
    category: str = Field(..., description="Stable error category")
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)

class ErrorResponse(BaseModel):
    success: bool = False
    error: ErrorDetail

class AnalysisResponse(BaseModel):
    success: bool = True
    data: Dict[str, Any] = Field(..., description="Serialized transaction analysis")

class NativeCurrencyModel(BaseModel):
    name: str
    symbol: str
    decimals: int

class ChainModel(BaseModel):
    name: str
    chainId: int
    nativeCurrency: NativeCurrencyModel
    rpc: List[str]

class ChainResponse(BaseModel):
    success: bool = True
    data: ChainModel

class CacheStatusResponse(BaseModel):
    success: bool = True
    token_cache: Dict[str, Any]
    chain_registry: Optional[Dict[str, Any]] = None
    rpc_pool: Optional[Dict[str, Any]] = None
    timestamp: datetime

class HealthResponse(BaseModel):
    status: str
    timestamp: datetime
    version: str
    environment: str
    services_initialized: bool
