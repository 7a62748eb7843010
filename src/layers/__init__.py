"""
Provisioning Layers

Wiring and artifact output around the engine components:

1. Provisioning (deploy tokens, registry, ledger; hand over ownership) - provisioning.py
2. Artifacts (deployment record, interfaces, holdings) - artifact_writer.py

Neither layer contains allocation logic; that lives in src/engine/.
"""

from .artifact_writer import ArtifactWriter, create_artifact_writer
from .provisioning import Deployment, provision_system

__all__ = [
    "ArtifactWriter",
    "create_artifact_writer",
    "Deployment",
    "provision_system",
]
