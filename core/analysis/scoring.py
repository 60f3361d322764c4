"""Complexity and risk heuristics over an assembled transaction analysis."""

from core.data.models import AnalysisSummary, TransactionAnalysis

COMPLEXITY_SIMPLE = "Simple"
COMPLEXITY_MODERATE = "Moderate"
COMPLEXITY_COMPLEX = "Complex"
COMPLEXITY_VERY_COMPLEX = "Very Complex"

RISK_LOW = "Low"
RISK_MEDIUM = "Medium"
RISK_HIGH = "High"


def complexity_points(analysis: TransactionAnalysis) -> int:
    score = 0
    score += len(analysis.transfers) * 2
    score += len(analysis.interactions) * 3
    score += len(analysis.events) * 2
    score += 5 if "+" in analysis.type else 0
    return score


def classify_complexity(score: int) -> str:
    if score <= 5:
        return COMPLEXITY_SIMPLE
    if score <= 15:
        return COMPLEXITY_MODERATE
    if score <= 30:
        return COMPLEXITY_COMPLEX
    return COMPLEXITY_VERY_COMPLEX


def calculate_complexity_score(analysis: TransactionAnalysis) -> str:
    return classify_complexity(complexity_points(analysis))


def risk_factors(analysis: TransactionAnalysis) -> int:
    factors = 0
    if len(analysis.interactions) > 3:
        factors += 1
    # Nothing assigns a Swap type today; the factor stays for callers that do
    if "Swap" in analysis.type:
        factors += 1
    if analysis.has_warning():
        factors += 2
    if len(analysis.transfers) > 5:
        factors += 1
    if "Contract Deployment" in analysis.type:
        factors += 1
    return factors


def classify_risk(factors: int) -> str:
    if factors == 0:
        return RISK_LOW
    if factors <= 2:
        return RISK_MEDIUM
    return RISK_HIGH


def calculate_risk_level(analysis: TransactionAnalysis) -> str:
    return classify_risk(risk_factors(analysis))


def build_summary(analysis: TransactionAnalysis) -> AnalysisSummary:
    return AnalysisSummary(
        total_transfers=len(analysis.transfers),
        unique_tokens=len(analysis.unique_token_addresses()),
        unique_contracts=len(analysis.interactions),
        complexity_score=calculate_complexity_score(analysis),
        risk_level=calculate_risk_level(analysis)
    )
