"""
Engine Configuration

Loads provisioning and policy settings from configs/engine.yaml.

Sections:
    engine:            rounding_policy, reassign_policy, propagation
    tokens:            logical name -> token parameters (one marked deposit_asset)
    model_portfolios:  named templates keyed by logical token name
    artifacts:         output_dir, backend_dir
    logging:           level

A missing file falls back to the defaults below (the USDC, REAL and PEQU fund
tokens, no templates) with a warning. Invalid values raise ValueError.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Union

import yaml

from src.engine.allocation_math import RoundingPolicy
from src.engine.investor_ledger import ReassignPolicy

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("configs/engine.yaml")
PROPAGATION_MODES = ("immediate", "lazy")


@dataclass
class TokenSpec:
    """Construction parameters for one AssetToken."""
    key: str
    name: str
    symbol: str
    decimals: int = 18
    fund_name: Optional[str] = None
    initial_supply: int = 0
    deposit_asset: bool = False


@dataclass
class ModelPortfolioSpec:
    """A template to create at provisioning time; allocations keyed by token key."""
    name: str
    allocations: Dict[str, int]


@dataclass
class EngineConfig:
    tokens: Dict[str, TokenSpec]
    model_portfolios: List[ModelPortfolioSpec] = field(default_factory=list)
    rounding_policy: RoundingPolicy = RoundingPolicy.CARRY
    reassign_policy: ReassignPolicy = ReassignPolicy.MANUAL
    propagation: str = "immediate"
    output_dir: Path = Path("reports/deployments")
    backend_dir: Optional[Path] = None
    log_level: str = "INFO"

    @property
    def deposit_token_key(self) -> str:
        for key, spec in self.tokens.items():
            if spec.deposit_asset:
                return key
        return next(iter(self.tokens))


DEFAULT_TOKENS: Dict[str, dict] = {
    "usdcToken": {
        "name": "USDC Token", "symbol": "USDC", "decimals": 6,
        "fund_name": "Stablecoin Fund", "deposit_asset": True,
    },
    "realEstateToken": {
        "name": "Real Estate Token", "symbol": "REAL", "decimals": 18,
        "fund_name": "Real Estate Fund",
    },
    "privateEquityToken": {
        "name": "Private Equity Token", "symbol": "PEQU", "decimals": 18,
        "fund_name": "Private Equity Fund",
    },
}


def _parse_tokens(raw: Optional[dict]) -> Dict[str, TokenSpec]:
    raw = raw or DEFAULT_TOKENS
    if not isinstance(raw, dict):
        raise ValueError(f"tokens must be a mapping of logical name -> parameters, got {type(raw)}")

    tokens = {}
    for key, params in raw.items():
        params = params or {}
        for required in ("name", "symbol"):
            if not params.get(required):
                raise ValueError(f"Token {key} missing required field: {required}")
        decimals = params.get("decimals", 18)
        if not isinstance(decimals, int) or isinstance(decimals, bool):
            raise ValueError(f"Token {key} field decimals must be an integer, got {decimals!r}")
        initial_supply = params.get("initial_supply", 0)
        if not isinstance(initial_supply, int) or initial_supply < 0:
            raise ValueError(f"Token {key} field initial_supply must be a non-negative integer, got {initial_supply!r}")
        tokens[key] = TokenSpec(
            key=key,
            name=params["name"],
            symbol=params["symbol"],
            decimals=decimals,
            fund_name=params.get("fund_name"),
            initial_supply=initial_supply,
            deposit_asset=bool(params.get("deposit_asset", False)),
        )

    flagged = [k for k, t in tokens.items() if t.deposit_asset]
    if len(flagged) > 1:
        raise ValueError(f"Only one token may be the deposit asset, got {flagged}")
    return tokens


def _parse_model_portfolios(raw: Optional[list], tokens: Dict[str, TokenSpec]) -> List[ModelPortfolioSpec]:
    portfolios = []
    for i, entry in enumerate(raw or []):
        name = entry.get("name") or f"portfolio_{i + 1}"
        allocations = entry.get("allocations") or {}
        if not isinstance(allocations, dict) or not allocations:
            raise ValueError(f"Model portfolio {name} needs a non-empty allocations mapping")
        unknown = [k for k in allocations if k not in tokens]
        if unknown:
            raise ValueError(f"Model portfolio {name} references unknown tokens: {unknown}")
        portfolios.append(ModelPortfolioSpec(name=name, allocations=dict(allocations)))
    return portfolios


def parse_engine_config(raw: Optional[dict]) -> EngineConfig:
    """Build an EngineConfig from an already-loaded YAML mapping."""
    raw = raw or {}
    engine = raw.get("engine", {}) or {}
    artifacts = raw.get("artifacts", {}) or {}
    logging_cfg = raw.get("logging", {}) or {}

    tokens = _parse_tokens(raw.get("tokens"))
    propagation = str(engine.get("propagation", "immediate")).lower()
    if propagation not in PROPAGATION_MODES:
        raise ValueError(f"propagation must be one of {PROPAGATION_MODES}, got {propagation}")

    backend_dir = artifacts.get("backend_dir")
    return EngineConfig(
        tokens=tokens,
        model_portfolios=_parse_model_portfolios(raw.get("model_portfolios"), tokens),
        rounding_policy=RoundingPolicy.parse(engine.get("rounding_policy", "carry")),
        reassign_policy=ReassignPolicy.parse(engine.get("reassign_policy", "manual")),
        propagation=propagation,
        output_dir=Path(artifacts.get("output_dir", "reports/deployments")),
        backend_dir=Path(backend_dir) if backend_dir else None,
        log_level=str(logging_cfg.get("level", "INFO")).upper(),
    )


def load_engine_config(path: Union[str, Path] = DEFAULT_CONFIG_PATH) -> EngineConfig:
    """Load engine configuration from YAML, falling back to defaults if the file is missing."""
    path = Path(path)
    if not path.exists():
        logger.warning(f"[EngineConfig] Config file not found: {path}, using defaults")
        return parse_engine_config({})

    with open(path, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}

    config = parse_engine_config(raw)
    logger.info(
        f"[EngineConfig] Loaded {path}: {len(config.tokens)} tokens, "
        f"{len(config.model_portfolios)} model portfolios, "
        f"rounding={config.rounding_policy.value}, reassign={config.reassign_policy.value}, "
        f"propagation={config.propagation}"
    )
    return config
