"""
Tests for ArtifactWriter (deployment record, interfaces, holdings CSV).
"""

import json

import pandas as pd
import pytest

from src.config.engine_config import parse_engine_config
from src.layers.artifact_writer import ArtifactWriter, create_artifact_writer
from src.layers.provisioning import provision_system

DEPLOYER = "0xdeployer"
INVESTOR = "0xinvestor"


@pytest.fixture
def deployment():
    config = parse_engine_config({
        "model_portfolios": [
            {"name": "balanced", "allocations": {"usdcToken": 3000, "realEstateToken": 5000, "privateEquityToken": 2000}},
        ],
    })
    return provision_system(config, DEPLOYER)


@pytest.fixture
def writer(tmp_path):
    return ArtifactWriter(tmp_path / "artifacts")


class TestJson:
    """Test deterministic JSON output and write modes."""

    def test_sorted_keys(self, writer):
        """Test JSON artifacts are written with sorted keys."""
        path = writer.write_json("params.json", {"b": 1, "a": 2}, mode="overwrite")
        text = path.read_text(encoding="utf-8")
        assert text.index('"a"') < text.index('"b"')

    def test_once_mode_skips_second_write(self, writer):
        """Test once mode leaves an existing artifact alone."""
        writer.write_json("once.json", {"v": 1})
        writer.write_json("once.json", {"v": 2})
        with open(writer.get_path("once.json"), encoding="utf-8") as f:
            assert json.load(f) == {"v": 1}

    def test_overwrite_mode(self, writer):
        """Test overwrite mode replaces an existing artifact."""
        writer.write_json("over.json", {"v": 1}, mode="overwrite")
        writer.write_json("over.json", {"v": 2}, mode="overwrite")
        with open(writer.get_path("over.json"), encoding="utf-8") as f:
            assert json.load(f) == {"v": 2}

    def test_unknown_mode(self, writer):
        """Test an unknown write mode raises."""
        with pytest.raises(ValueError, match="mode must be"):
            writer.write_json("x.json", {}, mode="append")


class TestDeploymentArtifacts:
    """Test deployment record and interface files."""

    def test_deployment_record(self, writer, deployment):
        """Test writing deployment.json."""
        path = writer.write_deployment(deployment.record())
        with open(path, encoding="utf-8") as f:
            record = json.load(f)

        assert path.name == "deployment.json"
        assert record["addresses"]["investorPortfolioManager"] == deployment.ledger.address
        assert record["addresses"]["modelPortfolioManager"] == deployment.registry.address
        assert record["addresses"]["usdcToken"] == deployment.tokens["usdcToken"].address

    def test_record_requires_addresses(self, writer):
        """Test a deployment record without addresses is rejected."""
        with pytest.raises(ValueError, match="addresses"):
            writer.write_deployment({"tokens": {}})

    def test_one_interface_per_kind(self, writer, deployment):
        """Test one interface file is written per component kind."""
        paths = writer.write_interfaces(deployment.components())
        names = sorted(p.name for p in paths)
        assert names == ["AssetToken.json", "InvestorLedger.json", "ModelPortfolioRegistry.json"]

        with open(writer.get_path("abi/InvestorLedger.json"), encoding="utf-8") as f:
            interface = json.load(f)
        assert "deposit" in interface["operations"]
        assert "withdraw" in interface["operations"]

    def test_export_to_backend(self, writer, deployment, tmp_path):
        """Test exporting the record and interfaces to a backend directory."""
        writer.write_deployment(deployment.record())
        writer.write_interfaces(deployment.components())
        backend = writer.export_to_backend(tmp_path / "backend" / "src" / "config")

        assert (backend / "deployment.json").exists()
        assert (backend / "abi" / "ModelPortfolioRegistry.json").exists()

    def test_export_without_record(self, writer, tmp_path):
        """Test exporting before deployment.json exists raises."""
        with pytest.raises(FileNotFoundError):
            writer.export_to_backend(tmp_path / "backend")


class TestHoldings:
    """Test holdings CSV output."""

    def test_write_holdings(self, writer, deployment):
        """Test writing the holdings table as CSV."""
        ledger = deployment.ledger
        usdc = deployment.deposit_token
        ledger.assign_template(INVESTOR, deployment.model_portfolios["balanced"], caller=DEPLOYER)
        usdc.mint(INVESTOR, 1000, caller=ledger.address)
        usdc.approve(INVESTOR, ledger.address, 1000)
        ledger.deposit(INVESTOR, 1000)

        path = writer.write_holdings(ledger)
        df = pd.read_csv(path, index_col="investor")
        assert df.loc[INVESTOR, "USDC"] == 300
        assert df.loc[INVESTOR, "REAL"] == 500
        assert df.loc[INVESTOR, "total_value"] == 1000


class TestFactory:
    """Test create_artifact_writer."""

    def test_none_is_noop(self):
        """Test the factory returns None without a directory."""
        assert create_artifact_writer(None) is None

    def test_creates_directory(self, tmp_path):
        """Test the factory creates the output directory."""
        writer = create_artifact_writer(tmp_path / "new")
        assert writer.base_dir.exists()
