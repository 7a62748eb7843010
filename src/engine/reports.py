"""
Tabular views over ledger state.

holdings_frame: one row per investor, one column per asset symbol.
drift_frame:    target vs actual weights for one investor, in basis points.

Token amounts are kept as Python ints; pandas stores them as int64 where
they fit and falls back to object dtype for larger (18-decimal) amounts.
"""

import logging
from typing import List

import numpy as np
import pandas as pd

from .allocation_math import BASIS_POINTS_TOTAL
from .investor_ledger import InvestorLedger

logger = logging.getLogger(__name__)


def holdings_frame(ledger: InvestorLedger) -> pd.DataFrame:
    """
    Build the holdings table for every investor known to the ledger.

    Columns: one per registered asset symbol (in registration order), then
    'unallocated', 'total_value' and 'template_id'. Index: investor.
    """
    assets = ledger.assets()
    symbols: List[str] = [token.symbol for token in assets.values()]
    columns = symbols + ["unallocated", "total_value", "template_id"]

    rows = {}
    for investor in ledger.investors():
        account = ledger.get_account(investor)
        row = {token.symbol: account.balances.get(address, 0) for address, token in assets.items()}
        row["unallocated"] = account.unallocated
        row["total_value"] = account.total_value
        row["template_id"] = account.template_id
        rows[investor] = row

    df = pd.DataFrame.from_dict(rows, orient="index", columns=columns)
    df.index.name = "investor"
    logger.debug(f"[Reports] holdings_frame: {len(df)} investors x {len(symbols)} assets")
    return df


def drift_frame(ledger: InvestorLedger, investor: str) -> pd.DataFrame:
    """
    Compare an investor's holdings to the assigned template weights.

    Returns:
        DataFrame indexed by asset symbol with columns:
            balance, target_weight_bps, actual_weight_bps, drift_bps
        Assets held outside the template appear with a target of 0.
        actual_weight_bps is 0 when the portfolio is empty.
    """
    account = ledger.get_account(investor)
    template = ledger.registry.get_template(account.template_id)
    targets = template.weights()

    assets = list(targets) + [a for a in account.balances if a not in targets]
    symbols = [ledger.symbol_of(a) for a in assets]
    balances = np.array([float(account.balances.get(a, 0)) for a in assets])
    target_bps = np.array([targets.get(a, 0) for a in assets], dtype=float)

    total = float(account.total_value)
    if total > 0:
        actual_bps = balances / total * BASIS_POINTS_TOTAL
    else:
        actual_bps = np.zeros_like(balances)

    df = pd.DataFrame(
        {
            "balance": [account.balances.get(a, 0) for a in assets],
            "target_weight_bps": target_bps,
            "actual_weight_bps": actual_bps,
            "drift_bps": actual_bps - target_bps,
        },
        index=pd.Index(symbols, name="asset"),
    )
    return df
