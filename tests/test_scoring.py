import pytest

from core.analysis.scoring import (
    build_summary, calculate_complexity_score, calculate_risk_level, classify_complexity,
    classify_risk, complexity_points, risk_factors
)
from core.data.models import (
    AnalysisEvent, ERC20Transfer, NativeTransfer, NetworkInfo, TokenMetadata, TokenStandard,
    TransactionAnalysis, TransactionInfo
)


def make_analysis(type_="Unknown", transfers=0, interactions=0, warnings=0) -> TransactionAnalysis:
    analysis = TransactionAnalysis(
        network=NetworkInfo(name="Ethereum Mainnet", chain_id=1, currency="ETH"),
        transaction=TransactionInfo(hash="0xabc", from_address="0x1", to_address="0x2",
                                    value=0, value_eth="0.0", nonce=0, status="Success"),
        type=type_
    )
    for i in range(transfers):
        token = TokenMetadata(address=f"0xtoken{i % 2}", standard=TokenStandard.ERC20, fetched_at=0.0)
        analysis.transfers.append(ERC20Transfer(token_type=TokenStandard.ERC20, from_address="0x1",
                                                to_address="0x2", token=token, value=i))
    for i in range(interactions):
        analysis.add_interaction(f"0xcontract{i}")
    for i in range(warnings):
        analysis.events.append(AnalysisEvent(type="Warning", message=f"Address 0xcontract{i} is not a contract"))
    return analysis


class TestComplexity:

    @pytest.mark.parametrize("points, expected", [
        (0, "Simple"), (5, "Simple"), (6, "Moderate"), (15, "Moderate"),
        (16, "Complex"), (30, "Complex"), (31, "Very Complex"),
    ])
    def test_buckets(self, points, expected):
        assert classify_complexity(points) == expected

    def test_points(self):
        analysis = make_analysis("Native + Token Transfer", transfers=2, interactions=1, warnings=1)
        # 2*2 transfers + 3*1 interaction + 2*1 event + 5 composition marker
        assert complexity_points(analysis) == 14
        assert calculate_complexity_score(analysis) == "Moderate"

    def test_single_native_transfer_is_simple(self):
        analysis = make_analysis("Native Transfer")
        analysis.transfers.append(NativeTransfer(token_type=TokenStandard.NATIVE, from_address="0x1",
                                                 to_address="0x2", value=10 ** 18))
        assert complexity_points(analysis) == 2
        assert calculate_complexity_score(analysis) == "Simple"


class TestRisk:

    @pytest.mark.parametrize("factors, expected", [
        (0, "Low"), (1, "Medium"), (2, "Medium"), (3, "High"), (6, "High"),
    ])
    def test_buckets(self, factors, expected):
        assert classify_risk(factors) == expected

    def test_each_factor(self):
        assert risk_factors(make_analysis()) == 0
        assert risk_factors(make_analysis(interactions=4)) == 1
        assert risk_factors(make_analysis(interactions=3)) == 0
        assert risk_factors(make_analysis("Token Swap")) == 1
        assert risk_factors(make_analysis(warnings=1)) == 2
        assert risk_factors(make_analysis(warnings=3)) == 2
        assert risk_factors(make_analysis(transfers=6)) == 1
        assert risk_factors(make_analysis(transfers=5)) == 0
        assert risk_factors(make_analysis("Native Transfer + Contract Deployment")) == 1

    def test_warning_with_deployment_is_high(self):
        analysis = make_analysis("Contract Deployment", warnings=1)
        assert calculate_risk_level(analysis) == "High"


class TestSummary:

    def test_counts(self):
        analysis = make_analysis("Token Transfer", transfers=3, interactions=2)
        analysis.transfers.insert(0, NativeTransfer(token_type=TokenStandard.NATIVE, from_address="0x1",
                                                    to_address="0x2", value=1))
        summary = build_summary(analysis)

        assert summary.total_transfers == 4
        # two distinct token addresses; native transfers carry none
        assert summary.unique_tokens == 2
        assert summary.unique_contracts == 2

    def test_is_deterministic(self):
        analysis = make_analysis("Native + Token Transfer", transfers=4, interactions=5, warnings=1)
        assert build_summary(analysis) == build_summary(analysis)
