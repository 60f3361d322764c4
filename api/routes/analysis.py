from fastapi import APIRouter, Depends
import logging

from api.dependencies import get_analyzer, validate_tx_hash
from api.models.responses import AnalysisResponse, ErrorResponse, OrjsonResponse
from core.analysis.transaction_analyzer import TransactionAnalyzer

logger = logging.getLogger(__name__)
router = APIRouter(tags=["analysis"])

@router.get(
    "/tx/{chain_id}/{tx_hash}",
    response_model=AnalysisResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse},
               502: {"model": ErrorResponse}, 504: {"model": ErrorResponse}}
)
async def analyze_transaction(
    chain_id: int,
    tx_hash: str = Depends(validate_tx_hash),
    analyzer: TransactionAnalyzer = Depends(get_analyzer)
):
    """Analyze a single transaction on the given chain"""
    # AnalysisError subclasses are rendered by the app-level handler
    analysis = await analyzer.analyze(tx_hash, chain_id)
    return OrjsonResponse({"success": True, "data": analysis.to_dict()})
