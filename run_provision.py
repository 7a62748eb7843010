"""
Main entry point for provisioning the model-portfolio ledger.

This script orchestrates a full deployment:
1. EngineConfig - read configs/engine.yaml
2. Provisioning - deploy tokens, registry and ledger, wire ownership
3. ArtifactWriter - write deployment.json and abi/ interface descriptions
4. Optional export of the artifacts to a backend directory
"""

import sys
import argparse
import logging
from pathlib import Path

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

from src.config.engine_config import DEFAULT_CONFIG_PATH, load_engine_config
from src.engine.ownership import generate_address
from src.layers.artifact_writer import create_artifact_writer
from src.layers.provisioning import provision_system


def main():
    """Provision the system and write its deployment artifacts."""

    parser = argparse.ArgumentParser(description="Provision tokens, model portfolio registry and investor ledger")
    parser.add_argument(
        "--config",
        type=str,
        default=str(DEFAULT_CONFIG_PATH),
        help=f"Path to engine config YAML. Default: {DEFAULT_CONFIG_PATH}"
    )
    parser.add_argument(
        "--deployer",
        type=str,
        default=None,
        help="Deployer identity. If not specified, a fresh identity is generated."
    )
    parser.add_argument(
        "--operator",
        type=str,
        default=None,
        help="Identity that receives registry and ledger ownership after provisioning."
    )
    parser.add_argument(
        "--output_dir",
        type=str,
        default=None,
        help="Artifact directory. Overrides artifacts.output_dir from the config."
    )
    parser.add_argument(
        "--backend_dir",
        type=str,
        default=None,
        help="Directory to copy deployment.json and abi/ into. Overrides artifacts.backend_dir."
    )

    args = parser.parse_args()

    try:
        config = load_engine_config(Path(args.config))
        logging.getLogger().setLevel(config.log_level)

        deployer = args.deployer or generate_address()
        output_dir = Path(args.output_dir) if args.output_dir else config.output_dir
        backend_dir = Path(args.backend_dir) if args.backend_dir else config.backend_dir

        logger.info("=" * 80)
        logger.info(f"Provisioning as {deployer}")
        logger.info("=" * 80)

        deployment = provision_system(config, deployer, operator=args.operator)

        writer = create_artifact_writer(output_dir)
        writer.write_deployment(deployment.record())
        writer.write_interfaces(deployment.components())
        if backend_dir is not None:
            writer.export_to_backend(backend_dir)

        for key, address in deployment.addresses().items():
            logger.info(f"  {key}: {address}")
        for name, template_id in deployment.model_portfolios.items():
            logger.info(f"  model portfolio {name}: id {template_id}")

        logger.info("=" * 80)
        logger.info(f"Provisioning completed. Artifacts in {output_dir}")
        logger.info("=" * 80)

        return deployment

    except Exception as e:
        logger.exception(f"Error during provisioning: {e}")
        return None


if __name__ == "__main__":
    deployment = main()
    sys.exit(0 if deployment is not None else 1)
