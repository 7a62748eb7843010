"""
Provisioning Layer

Constructs and wires one complete system from an EngineConfig:

1. Deploy one AssetToken per configured token (owned by the deployer)
2. Deploy the ModelPortfolioRegistry
3. Deploy the InvestorLedger bound to the deposit token and the registry
4. Link registry -> ledger (propagation: immediate only)
5. Register every token with the ledger
6. Create the configured model portfolios
7. Transfer token ownership to the ledger
8. Optionally hand registry and ledger ownership to an operator

No allocation logic lives here.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Optional

from src.config.engine_config import EngineConfig
from src.engine.asset_token import AssetToken
from src.engine.investor_ledger import InvestorLedger
from src.engine.model_portfolio import ModelPortfolioRegistry
from src.engine.ownership import require_identity

logger = logging.getLogger(__name__)

REGISTRY_KEY = "modelPortfolioManager"
LEDGER_KEY = "investorPortfolioManager"


@dataclass
class Deployment:
    """Handles to every provisioned component, keyed the way the config names them."""
    tokens: Dict[str, AssetToken]
    registry: ModelPortfolioRegistry
    ledger: InvestorLedger
    deposit_token_key: str
    propagation: str = "immediate"
    model_portfolios: Dict[str, int] = field(default_factory=dict)

    @property
    def deposit_token(self) -> AssetToken:
        return self.tokens[self.deposit_token_key]

    def addresses(self) -> Dict[str, str]:
        addresses = {key: token.address for key, token in self.tokens.items()}
        addresses[REGISTRY_KEY] = self.registry.address
        addresses[LEDGER_KEY] = self.ledger.address
        return addresses

    def components(self) -> list:
        return list(self.tokens.values()) + [self.registry, self.ledger]

    def record(self) -> dict:
        """Deployment record: addresses plus enough metadata to reconstruct the wiring."""
        return {
            "addresses": self.addresses(),
            "owners": {
                **{key: token.owner for key, token in self.tokens.items()},
                REGISTRY_KEY: self.registry.owner,
                LEDGER_KEY: self.ledger.owner,
            },
            "tokens": {
                key: {
                    "name": token.name,
                    "symbol": token.symbol,
                    "decimals": token.decimals,
                    "fund_name": token.fund_name,
                }
                for key, token in self.tokens.items()
            },
            "deposit_token": self.deposit_token_key,
            "model_portfolios": dict(self.model_portfolios),
            "policies": {
                "rounding_policy": self.ledger.rounding_policy.value,
                "reassign_policy": self.ledger.reassign_policy.value,
                "propagation": self.propagation,
            },
        }


def provision_system(
    config: EngineConfig,
    deployer: str,
    operator: Optional[str] = None,
) -> Deployment:
    """
    Build tokens, registry and ledger from `config` and wire ownership.

    Args:
        config: Parsed engine configuration
        deployer: Identity that constructs everything and initially owns it
        operator: If given, receives ownership of registry and ledger at the end

    Returns:
        Deployment with every component; tokens are owned by the ledger
    """
    require_identity(deployer, "deployer")
    if operator is not None:
        require_identity(operator, "operator")

    logger.info(f"[Provisioning] Deploying {len(config.tokens)} tokens as {deployer}")
    tokens: Dict[str, AssetToken] = {}
    for key, spec in config.tokens.items():
        tokens[key] = AssetToken(
            spec.name,
            spec.symbol,
            spec.decimals,
            spec.initial_supply,
            spec.fund_name,
            owner=deployer,
        )
        logger.info(f"[Provisioning] {key}: {spec.symbol} deployed at {tokens[key].address}")

    registry = ModelPortfolioRegistry(owner=deployer)
    deposit_key = config.deposit_token_key
    ledger = InvestorLedger(
        tokens[deposit_key],
        registry,
        owner=deployer,
        rounding_policy=config.rounding_policy,
        reassign_policy=config.reassign_policy,
    )

    if config.propagation == "immediate":
        registry.link_investor_manager(ledger, caller=deployer)
    else:
        logger.info("[Provisioning] Lazy propagation: registry not linked to ledger")

    for token in tokens.values():
        ledger.register_asset(token, caller=deployer)

    model_portfolios: Dict[str, int] = {}
    for portfolio in config.model_portfolios:
        allocations = [(tokens[key].address, weight) for key, weight in portfolio.allocations.items()]
        model_portfolios[portfolio.name] = registry.create_template(
            allocations, caller=deployer, name=portfolio.name
        )

    for token in tokens.values():
        token.transfer_ownership(ledger.address, caller=deployer)
    logger.info(f"[Provisioning] Token ownership transferred to ledger {ledger.address}")

    if operator is not None and operator != deployer:
        registry.transfer_ownership(operator, caller=deployer)
        ledger.transfer_ownership(operator, caller=deployer)
        logger.info(f"[Provisioning] Registry and ledger handed to operator {operator}")

    deployment = Deployment(
        tokens=tokens,
        registry=registry,
        ledger=ledger,
        deposit_token_key=deposit_key,
        propagation=config.propagation,
        model_portfolios=model_portfolios,
    )
    logger.info(
        f"[Provisioning] Complete: {len(tokens)} tokens, "
        f"{len(model_portfolios)} model portfolios, ledger={ledger.address}"
    )
    return deployment
