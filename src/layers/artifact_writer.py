"""
Artifact Writer for Provisioning Runs

Writes the deployment record, component interface descriptions and ledger
holdings snapshots in a deterministic, auditable format.

Layout under base_dir:
    deployment.json          {"addresses": {logical name -> identity}, ...}
    abi/<Kind>.json          describe() output per component kind
    holdings.csv             holdings_frame(ledger)

Key Principles:
- Deterministic: sorted JSON keys, stable column order
- Once mode: interface descriptions are written once per run
- Overwrite mode: the deployment record always reflects the latest wiring
"""

import json
import logging
import shutil
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import pandas as pd

from src.engine.investor_ledger import InvestorLedger
from src.engine.reports import holdings_frame

logger = logging.getLogger(__name__)

DEPLOYMENT_FILE = "deployment.json"
ABI_DIR = "abi"
HOLDINGS_FILE = "holdings.csv"


class ArtifactWriter:
    """
    Writes provisioning artifacts under a single base directory.

    Supports two JSON modes:
    - once: write only if the file does not exist yet (interfaces)
    - overwrite: always replace (deployment record)
    """

    def __init__(self, base_dir: Path):
        """
        Initialize ArtifactWriter.

        Args:
            base_dir: Base directory for artifacts (e.g., reports/deployments/)
        """
        self.base_dir = Path(base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)

        # Track which files have been written in "once" mode
        self._once_written = set()

        logger.info(f"[ArtifactWriter] Initialized with base_dir: {self.base_dir}")

    def write_csv(self, relative_path: str, df: pd.DataFrame) -> Path:
        """
        Write DataFrame to CSV, keeping the index as the first column.

        Rows are sorted by index so repeated runs produce identical files.
        """
        file_path = self.base_dir / relative_path
        file_path.parent.mkdir(parents=True, exist_ok=True)

        df.sort_index().to_csv(file_path, index=True)
        logger.debug(f"[ArtifactWriter] Wrote {relative_path}: {len(df)} rows")
        return file_path

    def write_json(
        self,
        relative_path: str,
        obj: Dict[str, Any],
        mode: str = "once"
    ) -> Path:
        """
        Write dictionary to JSON file.

        Args:
            relative_path: Path relative to base_dir (e.g., "abi/AssetToken.json")
            obj: Dictionary to write
            mode: "once" (write only if not exists) or "overwrite"
        """
        if mode not in ("once", "overwrite"):
            raise ValueError(f"mode must be 'once' or 'overwrite', got {mode}")

        file_path = self.base_dir / relative_path
        file_path.parent.mkdir(parents=True, exist_ok=True)

        if mode == "once":
            if file_path.exists() or relative_path in self._once_written:
                logger.debug(f"[ArtifactWriter] Skipping {relative_path} (already written)")
                return file_path
            self._once_written.add(relative_path)

        with open(file_path, 'w', encoding='utf-8') as f:
            json.dump(obj, f, indent=2, sort_keys=True, ensure_ascii=False)

        logger.debug(f"[ArtifactWriter] Wrote {relative_path}")
        return file_path

    def write_deployment(self, record: Dict[str, Any]) -> Path:
        """Write the deployment record (must contain an "addresses" mapping)."""
        if "addresses" not in record:
            raise ValueError("deployment record must contain 'addresses'")
        path = self.write_json(DEPLOYMENT_FILE, record, mode="overwrite")
        logger.info(f"[ArtifactWriter] Deployment record saved to {path}")
        return path

    def write_interfaces(self, components: Iterable[Any]) -> List[Path]:
        """
        Write one interface description per component kind.

        Each component must provide describe(); the first component of each
        kind wins, so several tokens share abi/AssetToken.json.
        """
        written = []
        for component in components:
            description = component.describe()
            kind = description["kind"]
            interface = {"kind": kind, "operations": description["operations"]}
            written.append(self.write_json(f"{ABI_DIR}/{kind}.json", interface, mode="once"))
        return sorted(set(written))

    def write_holdings(self, ledger: InvestorLedger) -> Path:
        return self.write_csv(HOLDINGS_FILE, holdings_frame(ledger))

    def export_to_backend(self, backend_dir: Path) -> Path:
        """
        Copy deployment.json and abi/ into a backend directory.

        Raises:
            FileNotFoundError: the deployment record has not been written yet
        """
        source = self.base_dir / DEPLOYMENT_FILE
        if not source.exists():
            raise FileNotFoundError(f"No deployment record at {source}")

        backend_dir = Path(backend_dir)
        backend_dir.mkdir(parents=True, exist_ok=True)
        shutil.copy2(source, backend_dir / DEPLOYMENT_FILE)

        abi_source = self.base_dir / ABI_DIR
        if abi_source.exists():
            shutil.copytree(abi_source, backend_dir / ABI_DIR, dirs_exist_ok=True)

        logger.info(f"[ArtifactWriter] Exported deployment artifacts to {backend_dir}")
        return backend_dir

    def get_path(self, relative_path: str) -> Path:
        """Get full path for a relative path."""
        return self.base_dir / relative_path


def create_artifact_writer(output_dir: Optional[Path] = None) -> Optional[ArtifactWriter]:
    """
    Factory function to create ArtifactWriter.

    Args:
        output_dir: Directory for artifacts (if None, returns None for no-op)

    Returns:
        ArtifactWriter instance or None
    """
    if output_dir is None:
        return None

    return ArtifactWriter(Path(output_dir))
