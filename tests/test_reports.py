"""
Tests for the pandas holdings and drift reports.
"""

import numpy as np
import pandas as pd
import pytest

from src.engine.asset_token import AssetToken
from src.engine.errors import NotAssigned
from src.engine.investor_ledger import InvestorLedger
from src.engine.model_portfolio import ModelPortfolioRegistry
from src.engine.reports import drift_frame, holdings_frame

OWNER = "0xowner"
ALICE = "0xalice"
BOB = "0xbob"


@pytest.fixture
def funded_ledger():
    """Ledger with ALICE on a 30/50/20 template and BOB on 50/50, 1000 each."""
    usdc = AssetToken("USDC Token", "USDC", 6, owner=OWNER)
    real = AssetToken("Real Estate Token", "REAL", owner=OWNER)
    pe = AssetToken("Private Equity Token", "PEQU", owner=OWNER)
    registry = ModelPortfolioRegistry(owner=OWNER)
    ledger = InvestorLedger(usdc, registry, owner=OWNER)
    registry.link_investor_manager(ledger, caller=OWNER)
    ledger.register_asset(real, caller=OWNER)
    ledger.register_asset(pe, caller=OWNER)

    balanced = registry.create_template(
        [(usdc.address, 3000), (real.address, 5000), (pe.address, 2000)], caller=OWNER
    )
    income = registry.create_template([(usdc.address, 5000), (real.address, 5000)], caller=OWNER)

    for investor, template_id in ((ALICE, balanced), (BOB, income)):
        usdc.mint(investor, 1000, caller=OWNER)
        ledger.assign_template(investor, template_id, caller=OWNER)
        usdc.approve(investor, ledger.address, 1000)

    for token in (usdc, real, pe):
        token.transfer_ownership(ledger.address, caller=OWNER)

    ledger.deposit(ALICE, 1000)
    ledger.deposit(BOB, 1000)
    return ledger, registry, (usdc, real, pe), balanced


class TestHoldingsFrame:
    """Test the per-investor holdings table."""

    def test_shape_and_columns(self, funded_ledger):
        """Test the holdings table shape and columns."""
        ledger, _, _, _ = funded_ledger
        df = holdings_frame(ledger)

        assert list(df.columns) == ["USDC", "REAL", "PEQU", "unallocated", "total_value", "template_id"]
        assert list(df.index) == [ALICE, BOB]
        assert df.index.name == "investor"

    def test_values(self, funded_ledger):
        """Test holdings table values."""
        ledger, _, _, _ = funded_ledger
        df = holdings_frame(ledger)

        assert df.loc[ALICE, "USDC"] == 300
        assert df.loc[ALICE, "REAL"] == 500
        assert df.loc[BOB, "PEQU"] == 0
        assert (df["total_value"] == 1000).all()

    def test_empty_ledger(self):
        """Test an empty ledger gives an empty table."""
        usdc = AssetToken("USDC Token", "USDC", 6, owner=OWNER)
        ledger = InvestorLedger(usdc, ModelPortfolioRegistry(owner=OWNER), owner=OWNER)
        df = holdings_frame(ledger)
        assert df.empty
        assert "USDC" in df.columns


class TestDriftFrame:
    """Test target vs actual weights."""

    def test_no_drift_after_deposit(self, funded_ledger):
        """Test there is no drift right after a deposit."""
        ledger, _, _, _ = funded_ledger
        df = drift_frame(ledger, ALICE)

        assert list(df.index) == ["USDC", "REAL", "PEQU"]
        assert np.allclose(df["actual_weight_bps"], [3000, 5000, 2000])
        assert np.allclose(df["drift_bps"], 0.0)

    def test_drift_after_manual_reassign(self, funded_ledger):
        """Test drift after a manual reassignment."""
        ledger, registry, _, _ = funded_ledger
        income = registry.template_ids()[1]
        ledger.assign_template(ALICE, income, caller=OWNER)

        df = drift_frame(ledger, ALICE)
        assert df.loc["PEQU", "target_weight_bps"] == 0
        assert df.loc["PEQU", "drift_bps"] == pytest.approx(2000.0)
        assert df.loc["USDC", "drift_bps"] == pytest.approx(-2000.0)

    def test_empty_portfolio_has_zero_actual(self, funded_ledger):
        """Test an empty portfolio has zero actual weights."""
        ledger, _, _, _ = funded_ledger
        ledger.withdraw(ALICE, 1000)
        df = drift_frame(ledger, ALICE)
        assert (df["actual_weight_bps"] == 0).all()
        assert isinstance(df, pd.DataFrame)

    def test_unassigned_investor(self, funded_ledger):
        """Test drift for an unassigned investor raises."""
        ledger, _, _, _ = funded_ledger
        with pytest.raises(NotAssigned):
            drift_frame(ledger, "0xnobody")
