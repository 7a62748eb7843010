"""
InvestorLedger: per-investor accounts that track a model portfolio.

Each investor is assigned one template from the ModelPortfolioRegistry and a
deposit asset (the cash token deposits and withdrawals are denominated in).
The ledger holds the real tokens for all investors at its own address and
keeps per-investor balances; for every asset, the ledger's token holding
moves by exactly the sum of the investors' balance changes.

Operations:
- deposit:   pull cash from the investor, split it by template weights
- withdraw:  reduce every holding proportionally, pay out cash
- rebalance: move existing value onto the current template weights

Assets are valued at parity with the deposit asset (no price conversion),
so moving value between assets is a burn of one token and a mint of another.

Every public mutation is all-or-nothing: token side effects go through a
settlement journal of compensating operations and account state is
snapshotted; any exception restores both before propagating.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from functools import partial
from typing import Callable, Dict, Iterator, List, Optional, Tuple, Union

from .allocation_math import (
    RoundingPolicy,
    balance_deltas,
    proportional_reduction,
    split_by_weights,
)
from .asset_token import AssetToken
from .errors import (
    InsufficientAllowance,
    InsufficientBalance,
    InsufficientFunds,
    InvalidAmount,
    NotAssigned,
    NotFound,
    TransferFailed,
    Unauthorized,
)
from .model_portfolio import ModelPortfolioRegistry, ModelPortfolioTemplate
from .ownership import Ownable, require_identity

logger = logging.getLogger(__name__)

_UNALLOCATED = object()


class AccountStatus(str, Enum):
    UNASSIGNED = "unassigned"
    ASSIGNED = "assigned"
    ACTIVE = "active"


class ReassignPolicy(str, Enum):
    """What assign_template does to an account that already holds value."""
    MANUAL = "manual"
    REBALANCE = "rebalance"

    @classmethod
    def parse(cls, value) -> "ReassignPolicy":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            available = [p.value for p in cls]
            raise ValueError(f"Unknown reassign policy: {value}. Available: {available}")


@dataclass
class InvestorAccount:
    """
    Ledger-side state for one investor.

    balances holds per-asset amounts in insertion order (template order for
    assets first allocated by a deposit). unallocated is rounding residue kept
    in the deposit asset; it is part of the portfolio value.
    """
    investor: str
    template_id: int
    deposit_asset: str
    balances: Dict[str, int] = field(default_factory=dict)
    unallocated: int = 0
    synced_version: int = 1

    @property
    def total_value(self) -> int:
        return sum(self.balances.values()) + self.unallocated

    @property
    def status(self) -> AccountStatus:
        return AccountStatus.ACTIVE if self.total_value > 0 else AccountStatus.ASSIGNED

    def copy(self) -> "InvestorAccount":
        return InvestorAccount(
            investor=self.investor,
            template_id=self.template_id,
            deposit_asset=self.deposit_asset,
            balances=dict(self.balances),
            unallocated=self.unallocated,
            synced_version=self.synced_version,
        )


class _SettlementJournal:
    """
    Token operations performed by the ledger, each paired with its inverse.

    The event log length of every token is recorded on first touch; rollback
    runs the inverses, then discards the events both directions produced.
    """

    def __init__(self, ledger_address: str):
        self.address = ledger_address
        self._undo: List[Callable[[], None]] = []
        self._event_marks: Dict[str, Tuple[AssetToken, int]] = {}

    def _touch(self, token: AssetToken) -> None:
        if token.address not in self._event_marks:
            self._event_marks[token.address] = (token, token._event_mark())

    def mint(self, token: AssetToken, amount: int) -> None:
        self._touch(token)
        token.mint(self.address, amount, caller=self.address)
        self._undo.append(partial(token.burn, self.address, amount, caller=self.address))

    def burn(self, token: AssetToken, amount: int) -> None:
        self._touch(token)
        token.burn(self.address, amount, caller=self.address)
        self._undo.append(partial(token.mint, self.address, amount, caller=self.address))

    def pull(self, token: AssetToken, holder: str, amount: int) -> None:
        self._touch(token)
        previous_allowance = token.allowance(holder, self.address)
        token.transfer_from(self.address, holder, self.address, amount)
        self._undo.append(partial(token.approve, holder, self.address, previous_allowance))
        self._undo.append(partial(token.transfer, self.address, holder, amount))

    def push(self, token: AssetToken, to: str, amount: int) -> None:
        self._touch(token)
        token.transfer(self.address, to, amount)
        self._undo.append(partial(token.mint, self.address, amount, caller=self.address))
        self._undo.append(partial(token.burn, to, amount, caller=self.address))

    def rollback(self) -> None:
        while self._undo:
            undo = self._undo.pop()
            try:
                undo()
            except Exception:
                logger.exception(f"[InvestorLedger] Compensating operation failed: {undo}")
        for token, mark in self._event_marks.values():
            token._discard_events_since(mark)


def _asset_id(asset: Union[str, AssetToken]) -> str:
    return asset.address if isinstance(asset, AssetToken) else asset


def _check_positive(amount) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise InvalidAmount(amount, "must be an integer")
    if amount <= 0:
        raise InvalidAmount(amount, "must be > 0")
    return amount


class InvestorLedger(Ownable):
    """
    Deposits, withdraws and rebalances investor holdings against model portfolios.

    The ledger must own every AssetToken it mints or burns; token ownership is
    handed over at provisioning time.
    """

    component_tag = "InvestorLedger"

    def __init__(
        self,
        deposit_asset: AssetToken,
        registry: ModelPortfolioRegistry,
        *,
        owner: str,
        address: Optional[str] = None,
        rounding_policy: Union[str, RoundingPolicy] = RoundingPolicy.CARRY,
        reassign_policy: Union[str, ReassignPolicy] = ReassignPolicy.MANUAL,
    ):
        """
        Initialize InvestorLedger.

        Args:
            deposit_asset: Default cash token for deposits and withdrawals
            registry: Template source
            owner: Administrative identity (assigns templates, registers assets)
            address: Ledger identity (generated if omitted)
            rounding_policy: "carry", "first" or "last" (see allocation_math)
            reassign_policy: "manual" or "rebalance"
        """
        super().__init__(owner=owner, address=address)
        self._registry = registry
        self._assets: Dict[str, AssetToken] = {deposit_asset.address: deposit_asset}
        self._deposit_asset = deposit_asset.address
        self._accounts: Dict[str, InvestorAccount] = {}
        self.rounding_policy = RoundingPolicy.parse(rounding_policy)
        self.reassign_policy = ReassignPolicy.parse(reassign_policy)

        logger.info(
            f"[InvestorLedger] Initialized: deposit_asset={deposit_asset.symbol}, "
            f"registry={registry.address}, rounding_policy={self.rounding_policy.value}, "
            f"reassign_policy={self.reassign_policy.value}, address={self.address}"
        )

    # ------------------------------------------------------------------
    # Properties / reads
    # ------------------------------------------------------------------

    @property
    def registry(self) -> ModelPortfolioRegistry:
        return self._registry

    @property
    def deposit_asset(self) -> str:
        return self._deposit_asset

    def assets(self) -> Dict[str, AssetToken]:
        with self._lock:
            return dict(self._assets)

    def investors(self) -> List[str]:
        with self._lock:
            return list(self._accounts)

    def investors_for_template(self, template_id: int) -> List[str]:
        with self._lock:
            return [a.investor for a in self._accounts.values() if a.template_id == template_id]

    def get_account(self, investor: str) -> InvestorAccount:
        with self._lock:
            account = self._accounts.get(investor)
            if account is None:
                raise NotAssigned(investor)
            return account.copy()

    def account_status(self, investor: str) -> AccountStatus:
        with self._lock:
            account = self._accounts.get(investor)
            return AccountStatus.UNASSIGNED if account is None else account.status

    def get_portfolio_value(self, investor: str) -> int:
        """Sum of the investor's holdings at parity; 0 for unknown investors."""
        with self._lock:
            account = self._accounts.get(investor)
            return 0 if account is None else account.total_value

    def get_asset_balance(self, investor: str, asset: Union[str, AssetToken]) -> int:
        with self._lock:
            account = self._accounts.get(investor)
            if account is None:
                return 0
            return account.balances.get(_asset_id(asset), 0)

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    def register_asset(self, token: AssetToken, caller: str) -> None:
        """Make `token` resolvable by its address for template allocations."""
        with self._lock:
            self._only_owner(caller, "register_asset")
            self._assets[token.address] = token
            self._emit("AssetRegistered", asset=token.address, symbol=token.symbol)
        logger.info(f"[InvestorLedger] Registered asset {token.symbol} ({token.address})")

    def assign_template(
        self,
        investor: str,
        template_id: int,
        deposit_asset_ref: Union[str, AssetToken, None] = None,
        *,
        caller: str,
    ) -> None:
        """
        Assign (or reassign) a model portfolio to an investor.

        With the manual reassign policy, existing holdings are left where they
        are until rebalance() is called; with the rebalance policy they are
        moved onto the new template in the same call.

        Raises:
            Unauthorized: caller is not the ledger owner
            NotFound: unknown template or unregistered deposit asset
        """
        with self._atomic("assign_template") as journal:
            self._only_owner(caller, "assign_template")
            require_identity(investor, "investor")
            template = self._registry.get_template(template_id)
            account = self._accounts.get(investor)

            if deposit_asset_ref is not None:
                deposit_asset = _asset_id(deposit_asset_ref)
            elif account is not None:
                deposit_asset = account.deposit_asset
            else:
                deposit_asset = self._deposit_asset
            self._resolve(deposit_asset)

            if account is None:
                account = InvestorAccount(
                    investor=investor,
                    template_id=template_id,
                    deposit_asset=deposit_asset,
                    synced_version=template.version,
                )
                self._accounts[investor] = account
            else:
                if deposit_asset != account.deposit_asset:
                    self._commit(
                        account, journal, dict(account.balances), account.unallocated,
                        deposit_asset=deposit_asset,
                    )
                account.template_id = template_id
                account.synced_version = template.version
                if self.reassign_policy == ReassignPolicy.REBALANCE and account.total_value > 0:
                    self._rebalance_account(account, journal, template)

            self._emit(
                "ModelPortfolioAssigned",
                investor=investor, template_id=template_id, deposit_asset=deposit_asset,
            )

        logger.info(
            f"[InvestorLedger] Assigned template {template_id} to {investor} "
            f"(deposit_asset={self._assets[deposit_asset].symbol})"
        )

    # ------------------------------------------------------------------
    # Investor operations
    # ------------------------------------------------------------------

    def deposit(self, investor: str, amount: int) -> Dict[str, int]:
        """
        Pull `amount` of the deposit asset from the investor and allocate it.

        The investor must have approved the ledger as spender beforehand. Each
        allocation receives floor(amount * weight / 10000); the residue follows
        the ledger's rounding policy.

        Returns:
            Per-asset amounts credited by this deposit

        Raises:
            InvalidAmount: amount is not a positive int
            NotAssigned: investor has no template
            NotFound: a template asset is not registered with the ledger
            TransferFailed: the pull failed for balance or allowance
        """
        _check_positive(amount)
        with self._atomic("deposit") as journal:
            account = self._require_account(investor)
            template = self._sync(account, journal)

            shares, carried = split_by_weights(amount, template.pairs(), self.rounding_policy)
            balances = dict(account.balances)
            for asset, share in shares.items():
                balances[asset] = balances.get(asset, 0) + share

            self._commit(account, journal, balances, account.unallocated + carried, cash_in=amount)
            self._emit("Deposit", investor=investor, amount=amount, allocations=dict(shares))

        logger.info(
            f"[InvestorLedger] Deposit {amount} for {investor}: "
            + ", ".join(f"{self.symbol_of(a)}={s}" for a, s in shares.items())
            + (f", unallocated={carried}" if carried else "")
        )
        return shares

    def withdraw(self, investor: str, amount: int, caller: Optional[str] = None) -> Dict[str, int]:
        """
        Liquidate `amount` of value proportionally and pay it out in the deposit asset.

        Returns:
            Per-asset reductions (the carried residue is reported under the
            deposit asset together with any deposit-asset holding)

        Raises:
            Unauthorized: caller is neither the investor nor the ledger owner
            InvalidAmount: amount is not a positive int
            NotAssigned: investor has no template
            InsufficientFunds: amount exceeds the portfolio value
        """
        caller = investor if caller is None else caller
        if caller not in (investor, self.owner):
            raise Unauthorized(caller, investor, "InvestorLedger.withdraw")
        _check_positive(amount)

        with self._atomic("withdraw") as journal:
            account = self._require_account(investor)
            self._sync(account, journal)

            total = account.total_value
            if amount > total:
                raise InsufficientFunds(investor, total, amount)

            holdings = dict(account.balances)
            holdings[_UNALLOCATED] = account.unallocated
            reductions = proportional_reduction(holdings, amount)

            balances = {a: b - reductions[a] for a, b in account.balances.items()}
            unallocated = account.unallocated - reductions[_UNALLOCATED]
            self._commit(account, journal, balances, unallocated, cash_out=amount)

            reported = {a: r for a, r in reductions.items() if a is not _UNALLOCATED and r}
            if reductions[_UNALLOCATED]:
                reported[account.deposit_asset] = (
                    reported.get(account.deposit_asset, 0) + reductions[_UNALLOCATED]
                )
            self._emit("Withdrawal", investor=investor, amount=amount, reductions=dict(reported))

        logger.info(
            f"[InvestorLedger] Withdraw {amount} for {investor}: "
            + ", ".join(f"{self.symbol_of(a)}=-{r}" for a, r in reported.items())
        )
        return reported

    def rebalance(self, investor: str, caller: Optional[str] = None) -> Dict[str, int]:
        """
        Move the investor's holdings onto the assigned template's weights.

        Holdings in assets outside the template are liquidated into template
        assets. Total value is conserved exactly.

        Returns:
            The investor's balances after rebalancing
        """
        caller = investor if caller is None else caller
        if caller not in (investor, self.owner):
            raise Unauthorized(caller, investor, "InvestorLedger.rebalance")

        with self._atomic("rebalance") as journal:
            account = self._require_account(investor)
            template = self._registry.get_template(account.template_id)
            self._rebalance_account(account, journal, template)
            result = dict(account.balances)
        return result

    def on_template_updated(self, template_id: int) -> List[str]:
        """
        Rebalance every assignee of `template_id` to its current weights.

        Called by the registry after an update. All assignees are rebalanced
        in one atomic unit; a failure for any of them undoes all.

        Returns:
            Investors that were rebalanced
        """
        with self._atomic("on_template_updated") as journal:
            template = self._registry.get_template(template_id)
            rebalanced = self.investors_for_template(template_id)
            for investor in rebalanced:
                self._rebalance_account(self._accounts[investor], journal, template)

        logger.info(
            f"[InvestorLedger] Template {template_id} v{template.version} propagated to "
            f"{len(rebalanced)} investor(s)"
        )
        return rebalanced

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @contextmanager
    def _atomic(self, operation: str) -> Iterator[_SettlementJournal]:
        # Lock order is registry, then ledger: update_template calls back into
        # the ledger while holding the registry lock.
        with self._registry._lock, self._lock:
            snapshot = {k: v.copy() for k, v in self._accounts.items()}
            event_mark = self._event_mark()
            journal = _SettlementJournal(self.address)
            try:
                yield journal
            except Exception as exc:
                journal.rollback()
                self._accounts = snapshot
                self._discard_events_since(event_mark)
                logger.warning(f"[InvestorLedger] {operation} failed and was rolled back: {exc}")
                raise

    def _resolve(self, asset: str) -> AssetToken:
        token = self._assets.get(asset)
        if token is None:
            raise NotFound("asset", asset)
        return token

    def symbol_of(self, asset: str) -> str:
        token = self._assets.get(asset)
        return token.symbol if token is not None else asset

    def _require_account(self, investor: str) -> InvestorAccount:
        account = self._accounts.get(investor)
        if account is None:
            raise NotAssigned(investor)
        return account

    def _sync(self, account: InvestorAccount, journal: _SettlementJournal) -> ModelPortfolioTemplate:
        """Return the account's template, rebalancing first if the template changed since last sync."""
        template = self._registry.get_template(account.template_id)
        for asset in template.assets:
            self._resolve(asset)
        if account.synced_version != template.version:
            logger.info(
                f"[InvestorLedger] {account.investor} lags template {template.id} "
                f"(v{account.synced_version} -> v{template.version}); rebalancing"
            )
            self._rebalance_account(account, journal, template)
        return template

    def _rebalance_account(
        self,
        account: InvestorAccount,
        journal: _SettlementJournal,
        template: ModelPortfolioTemplate,
    ) -> None:
        for asset in template.assets:
            self._resolve(asset)
        total = account.total_value
        targets, carried = split_by_weights(total, template.pairs(), self.rounding_policy)
        balances = {asset: 0 for asset in account.balances}
        balances.update(targets)
        moved = self._commit(account, journal, balances, carried)
        account.synced_version = template.version
        if moved:
            self._emit(
                "Rebalanced",
                investor=account.investor, template_id=template.id,
                version=template.version, balances=dict(account.balances),
            )
            logger.info(
                f"[InvestorLedger] Rebalanced {account.investor} to template {template.id} "
                f"v{template.version}: "
                + ", ".join(f"{self.symbol_of(a)}={b}" for a, b in account.balances.items())
            )

    def _commit(
        self,
        account: InvestorAccount,
        journal: _SettlementJournal,
        balances: Dict[str, int],
        unallocated: int,
        deposit_asset: Optional[str] = None,
        cash_in: int = 0,
        cash_out: int = 0,
    ) -> Dict[str, int]:
        """
        Settle the token movements implied by a new account state, then store it.

        The ledger's holding of each token changes by the account's change in
        that asset (carried residue counts toward its deposit asset). Cash in
        is pulled first, burns precede mints, cash out is pushed last.

        Returns:
            Per-asset change of the account's holdings
        """
        new_deposit_asset = deposit_asset or account.deposit_asset

        before = dict(account.balances)
        before[account.deposit_asset] = before.get(account.deposit_asset, 0) + account.unallocated
        after = dict(balances)
        after[new_deposit_asset] = after.get(new_deposit_asset, 0) + unallocated
        changes = balance_deltas(before, after)

        cash_asset = account.deposit_asset
        cash = self._resolve(cash_asset)
        physical = {cash_asset: cash_in - cash_out} if (cash_in or cash_out) else {}
        adjustments = balance_deltas(physical, changes)

        if cash_in:
            try:
                journal.pull(cash, account.investor, cash_in)
            except (InsufficientBalance, InsufficientAllowance) as exc:
                raise TransferFailed(cash_asset, str(exc)) from exc

        for asset, delta in adjustments.items():
            if delta < 0:
                journal.burn(self._resolve(asset), -delta)
                logger.debug(f"[InvestorLedger] Burn {-delta} {self.symbol_of(asset)}")
        for asset, delta in adjustments.items():
            if delta > 0:
                journal.mint(self._resolve(asset), delta)
                logger.debug(f"[InvestorLedger] Mint {delta} {self.symbol_of(asset)}")

        if cash_out:
            journal.push(cash, account.investor, cash_out)

        template_assets = set(self._registry.get_template(account.template_id).assets)
        account.balances = {a: b for a, b in balances.items() if b or a in template_assets}
        account.unallocated = unallocated
        account.deposit_asset = new_deposit_asset
        return changes
