"""
AssetToken: fungible, ownable, mintable/burnable balance ledger for one asset.

One instance per asset (e.g. a cash-equivalent unit, a real-estate fund share).
Mint and burn are restricted to the current owner; transfers are made by the
holder or by a spender holding an allowance.

Invariant: sum(balances) == total_supply == minted - burned.
"""

import logging
from typing import Dict, Optional, Tuple

from .errors import (
    InsufficientAllowance,
    InsufficientBalance,
    InvalidAmount,
)
from .ownership import Ownable, require_identity

logger = logging.getLogger(__name__)

MAX_SUPPLY = 2 ** 256 - 1


def _check_amount(amount, allow_zero: bool) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise InvalidAmount(amount, "must be an integer")
    if amount < 0:
        raise InvalidAmount(amount, "must be non-negative")
    if amount == 0 and not allow_zero:
        raise InvalidAmount(amount, "must be > 0")
    if amount > MAX_SUPPLY:
        raise InvalidAmount(amount, f"must be <= {MAX_SUPPLY}")
    return amount


class AssetToken(Ownable):
    """
    Fungible balance ledger with a single owner capability.

    The owner is normally handed to the InvestorLedger at provisioning time so
    that only the ledger can mint and burn on behalf of investors.
    """

    component_tag = "AssetToken"

    def __init__(
        self,
        name: str,
        symbol: str,
        decimals: int = 18,
        initial_supply: int = 0,
        fund_name: Optional[str] = None,
        *,
        owner: str,
        address: Optional[str] = None,
    ):
        """
        Initialize AssetToken.

        Args:
            name: Display name (e.g. "USDC Token")
            symbol: Ticker symbol (e.g. "USDC")
            decimals: Precision unit, fixed for the token's lifetime (default: 18)
            initial_supply: Amount minted to `owner` at construction (default: 0)
            fund_name: Optional fund label (e.g. "Stablecoin Fund")
            owner: Identity holding the mint/burn capability
            address: Token identity (generated if omitted)
        """
        if not name or not symbol:
            raise ValueError(f"name and symbol must be non-empty, got {name!r}/{symbol!r}")
        if isinstance(decimals, bool) or not isinstance(decimals, int) or not (0 <= decimals <= 255):
            raise ValueError(f"decimals must be an integer in [0, 255], got {decimals!r}")
        _check_amount(initial_supply, allow_zero=True)

        super().__init__(owner=owner, address=address)
        self._name = name
        self._symbol = symbol
        self._decimals = decimals
        self._fund_name = fund_name
        self._balances: Dict[str, int] = {}
        self._allowances: Dict[Tuple[str, str], int] = {}
        self._total_supply = 0
        self.component_tag = f"AssetToken:{symbol}"

        if initial_supply:
            self._credit(owner, initial_supply)
            self._total_supply = initial_supply
            self._emit("Transfer", sender=None, to=owner, amount=initial_supply)

        logger.info(
            f"[{self.component_tag}] Initialized: name={name}, decimals={decimals}, "
            f"initial_supply={initial_supply}, owner={owner}, address={self.address}"
        )

    # ------------------------------------------------------------------
    # Metadata
    # ------------------------------------------------------------------

    @property
    def name(self) -> str:
        return self._name

    @property
    def symbol(self) -> str:
        return self._symbol

    @property
    def decimals(self) -> int:
        return self._decimals

    @property
    def fund_name(self) -> Optional[str]:
        return self._fund_name

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def total_supply(self) -> int:
        return self._total_supply

    def balance_of(self, holder: str) -> int:
        return self._balances.get(holder, 0)

    def allowance(self, holder: str, spender: str) -> int:
        return self._allowances.get((holder, spender), 0)

    def holders(self) -> Dict[str, int]:
        """Snapshot of all non-zero balances."""
        with self._lock:
            return {h: b for h, b in self._balances.items() if b}

    # ------------------------------------------------------------------
    # Owner-only supply changes
    # ------------------------------------------------------------------

    def mint(self, holder: str, amount: int, caller: str) -> None:
        """
        Create `amount` new units for `holder`.

        Raises:
            Unauthorized: caller is not the current owner
            InvalidAddress: holder is empty or the zero identity
            InvalidAmount: amount is not a positive int or would overflow total supply
        """
        with self._lock:
            self._only_owner(caller, "mint")
            require_identity(holder, "holder")
            _check_amount(amount, allow_zero=False)
            if self._total_supply + amount > MAX_SUPPLY:
                raise InvalidAmount(amount, "would overflow total supply")
            self._credit(holder, amount)
            self._total_supply += amount
            self._emit("Transfer", sender=None, to=holder, amount=amount)
        logger.debug(f"[{self.component_tag}] Minted {amount} to {holder}")

    def burn(self, holder: str, amount: int, caller: str) -> None:
        """
        Destroy `amount` units held by `holder`.

        Raises:
            Unauthorized: caller is not the current owner
            InvalidAmount: amount is not a positive int
            InsufficientBalance: holder holds less than amount
        """
        with self._lock:
            self._only_owner(caller, "burn")
            _check_amount(amount, allow_zero=False)
            self._debit(holder, amount)
            self._total_supply -= amount
            self._emit("Transfer", sender=holder, to=None, amount=amount)
        logger.debug(f"[{self.component_tag}] Burned {amount} from {holder}")

    # ------------------------------------------------------------------
    # Holder operations
    # ------------------------------------------------------------------

    def transfer(self, sender: str, to: str, amount: int) -> None:
        """
        Move `amount` from `sender` to `to`.

        Raises:
            InvalidAddress: `to` is empty or the zero identity
            InvalidAmount: amount is negative or not an int
            InsufficientBalance: sender holds less than amount
        """
        with self._lock:
            require_identity(to, "to")
            _check_amount(amount, allow_zero=True)
            self._move(sender, to, amount)

    def approve(self, holder: str, spender: str, amount: int) -> None:
        """Set the allowance `spender` may move out of `holder`'s balance."""
        with self._lock:
            require_identity(spender, "spender")
            _check_amount(amount, allow_zero=True)
            self._allowances[(holder, spender)] = amount
            self._emit("Approval", holder=holder, spender=spender, amount=amount)
        logger.debug(f"[{self.component_tag}] Approval: {holder} -> {spender} = {amount}")

    def transfer_from(self, spender: str, holder: str, to: str, amount: int) -> None:
        """
        Move `amount` from `holder` to `to` using `spender`'s allowance.

        An allowance of MAX_SUPPLY is unlimited and is not decremented.

        Raises:
            InsufficientAllowance: spender's allowance is below amount
            InsufficientBalance: holder holds less than amount
        """
        with self._lock:
            require_identity(to, "to")
            _check_amount(amount, allow_zero=True)
            current = self.allowance(holder, spender)
            if current < amount:
                raise InsufficientAllowance(spender, current, amount)
            if self.balance_of(holder) < amount:
                raise InsufficientBalance(holder, self.balance_of(holder), amount)
            if current != MAX_SUPPLY:
                self._allowances[(holder, spender)] = current - amount
            self._move(holder, to, amount)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _credit(self, holder: str, amount: int) -> None:
        self._balances[holder] = self._balances.get(holder, 0) + amount

    def _debit(self, holder: str, amount: int) -> None:
        available = self._balances.get(holder, 0)
        if available < amount:
            raise InsufficientBalance(holder, available, amount)
        self._balances[holder] = available - amount

    def _move(self, sender: str, to: str, amount: int) -> None:
        self._debit(sender, amount)
        self._credit(to, amount)
        self._emit("Transfer", sender=sender, to=to, amount=amount)
        logger.debug(f"[{self.component_tag}] Transfer {amount}: {sender} -> {to}")

    def describe(self) -> dict:
        description = super().describe()
        description.update({
            "name": self._name,
            "symbol": self._symbol,
            "decimals": self._decimals,
            "fund_name": self._fund_name,
        })
        return description

    def __repr__(self) -> str:
        return f"AssetToken({self._symbol!r}, address={self.address!r})"
