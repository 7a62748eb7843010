"""
Integer allocation arithmetic for basis-point weights.

All amounts are Python ints (token base units can exceed int64 at 18 decimals,
so nothing here goes through numpy/pandas). Per-asset shares are floored
independently; what happens to the flooring residue is decided by a
RoundingPolicy:

- carry: residue is returned to the caller, which keeps it as unallocated
         deposit-asset cash (per-asset shares stay exactly floored)
- first: residue is added to the first allocation with a non-zero weight
- last:  residue is added to the last allocation with a non-zero weight
"""

from enum import Enum
from typing import Dict, Hashable, List, Mapping, Sequence, Tuple

BASIS_POINTS_TOTAL = 10_000


class RoundingPolicy(str, Enum):
    CARRY = "carry"
    FIRST = "first"
    LAST = "last"

    @classmethod
    def parse(cls, value) -> "RoundingPolicy":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            available = [p.value for p in cls]
            raise ValueError(f"Unknown rounding policy: {value}. Available: {available}")


def floor_share(amount: int, weight: int, total: int = BASIS_POINTS_TOTAL) -> int:
    """floor(amount * weight / total) in exact integer arithmetic."""
    return (amount * weight) // total


def split_by_weights(
    amount: int,
    allocations: Sequence[Tuple[str, int]],
    policy: RoundingPolicy = RoundingPolicy.CARRY,
) -> Tuple[Dict[str, int], int]:
    """
    Split `amount` across `(asset, weight)` allocations.

    Args:
        amount: Non-negative integer amount to distribute
        allocations: Ordered (asset, weight) pairs; weights sum to BASIS_POINTS_TOTAL
        policy: What to do with the flooring residue

    Returns:
        (shares, carried): shares maps every asset to its amount, in allocation
        order; carried is the residue left for the caller (non-zero only under
        RoundingPolicy.CARRY). sum(shares) + carried == amount.
    """
    shares = {asset: floor_share(amount, weight) for asset, weight in allocations}
    residue = amount - sum(shares.values())

    if residue == 0 or policy == RoundingPolicy.CARRY:
        return shares, residue

    weighted = [asset for asset, weight in allocations if weight > 0]
    target = weighted[0] if policy == RoundingPolicy.FIRST else weighted[-1]
    shares[target] += residue
    return shares, 0


def proportional_reduction(holdings: Mapping[Hashable, int], amount: int) -> Dict[Hashable, int]:
    """
    Compute per-holding reductions summing to exactly `amount`.

    Each holding first gives floor(balance * amount / total). The shortfall
    left by flooring is then taken from holdings in iteration order, each up
    to what it still holds.

    Args:
        holdings: Ordered mapping of key -> non-negative balance
        amount: Amount to remove; 0 <= amount <= sum(holdings)

    Returns:
        Dict key -> reduction for every key in `holdings`.

    Raises:
        ValueError: if amount is negative or exceeds the total held
    """
    total = sum(holdings.values())
    if amount < 0 or amount > total:
        raise ValueError(f"amount must be in [0, {total}], got {amount}")
    if total == 0:
        return {key: 0 for key in holdings}

    reductions = {key: (balance * amount) // total for key, balance in holdings.items()}
    shortfall = amount - sum(reductions.values())
    for key, balance in holdings.items():
        if shortfall == 0:
            break
        take = min(balance - reductions[key], shortfall)
        reductions[key] += take
        shortfall -= take
    return reductions


def balance_deltas(current: Mapping[str, int], target: Mapping[str, int]) -> Dict[str, int]:
    """target - current for the union of keys (current order first); zero deltas dropped."""
    keys: List[str] = list(current) + [k for k in target if k not in current]
    deltas = {k: target.get(k, 0) - current.get(k, 0) for k in keys}
    return {k: d for k, d in deltas.items() if d != 0}
