"""
Engine package: asset tokens, model portfolio templates and the investor ledger.

All balances are integers in token base units; weights are basis points
(10000 = 100%). Every public mutation is atomic.
"""

from .errors import (
    PortfolioEngineError,
    Unauthorized,
    InvalidAmount,
    InvalidWeights,
    DuplicateAsset,
    InvalidAddress,
    InvalidOwner,
    NotFound,
    NotAssigned,
    InsufficientBalance,
    InsufficientAllowance,
    InsufficientFunds,
    TransferFailed,
)
from .ownership import ZERO_ADDRESS, EventRecord, Ownable, generate_address
from .allocation_math import BASIS_POINTS_TOTAL, RoundingPolicy
from .asset_token import AssetToken, MAX_SUPPLY
from .model_portfolio import (
    Allocation,
    ModelPortfolioRegistry,
    ModelPortfolioTemplate,
    allocations_from_lists,
)
from .investor_ledger import AccountStatus, InvestorAccount, InvestorLedger, ReassignPolicy
from .reports import drift_frame, holdings_frame

__all__ = [
    # Errors
    'PortfolioEngineError',
    'Unauthorized',
    'InvalidAmount',
    'InvalidWeights',
    'DuplicateAsset',
    'InvalidAddress',
    'InvalidOwner',
    'NotFound',
    'NotAssigned',
    'InsufficientBalance',
    'InsufficientAllowance',
    'InsufficientFunds',
    'TransferFailed',
    # Identities
    'ZERO_ADDRESS',
    'EventRecord',
    'Ownable',
    'generate_address',
    # Components
    'AssetToken',
    'MAX_SUPPLY',
    'BASIS_POINTS_TOTAL',
    'RoundingPolicy',
    'Allocation',
    'ModelPortfolioRegistry',
    'ModelPortfolioTemplate',
    'allocations_from_lists',
    'AccountStatus',
    'InvestorAccount',
    'InvestorLedger',
    'ReassignPolicy',
    # Reports
    'holdings_frame',
    'drift_frame',
]

__version__ = '0.1.0'
