# api/dependencies.py - FastAPI dependencies and error mapping for the analysis API

import re
import logging
from fastapi import Depends, HTTPException, Request

from api.models.responses import ErrorDetail, ErrorResponse, OrjsonResponse
from core.analysis.transaction_analyzer import TransactionAnalyzer
from core.errors import (
    AllEndpointsFailedError, AnalysisError, AnalysisTimeoutError, ChainCatalogError,
    ChainNotFoundError, InvalidTransactionHashError, NoEndpointsError, TransactionNotFoundError
)
from services.service_container import ServiceContainer

logger = logging.getLogger(__name__)

TX_HASH_PATTERN = re.compile(r'^0x[0-9a-fA-F]{64}$')

# Checked in order; the first matching class decides the HTTP status
ERROR_STATUS_CODES = (
    (InvalidTransactionHashError, 400),
    (ChainNotFoundError, 404),
    (TransactionNotFoundError, 404),
    (NoEndpointsError, 502),
    (AllEndpointsFailedError, 502),
    (ChainCatalogError, 502),
    (AnalysisTimeoutError, 504),
)

def status_code_for(error: AnalysisError) -> int:
    for error_type, status_code in ERROR_STATUS_CODES:
        if isinstance(error, error_type):
            return status_code
    return 500

async def analysis_error_handler(request: Request, exc: AnalysisError) -> OrjsonResponse:
    """Render engine errors as {success: false, error: {category, message, details}}"""
    status_code = status_code_for(exc)
    if status_code >= 500:
        logger.error(f"❌ {request.url.path} failed: {exc}")
    else:
        logger.info(f"ℹ️ {request.url.path} rejected: {exc}")

    body = ErrorResponse(error=ErrorDetail(**exc.to_dict()))
    return OrjsonResponse(status_code=status_code, content=body.model_dump())

# Service access
def get_services(request: Request) -> ServiceContainer:
    services = getattr(request.app.state, "services", None)
    if services is None or services.analyzer is None:
        raise HTTPException(status_code=503, detail="Analysis services are not initialized")
    return services

def get_analyzer(services: ServiceContainer = Depends(get_services)) -> TransactionAnalyzer:
    return services.analyzer

# Input validation
def validate_tx_hash(tx_hash: str) -> str:
    """Validate a 32-byte hex transaction hash"""
    if not TX_HASH_PATTERN.match(tx_hash):
        raise InvalidTransactionHashError(tx_hash)
    return tx_hash.lower()
