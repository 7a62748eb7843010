"""
Identities, single-owner capability and per-component event logs.

Every engine component (AssetToken, ModelPortfolioRegistry, InvestorLedger)
has a stable identity (`address`) and exactly one owner identity. Privileged
operations start with `_only_owner(caller, ...)`; ownership moves only through
`transfer_ownership`, which takes effect immediately.
"""

import inspect
import logging
import secrets
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .errors import InvalidAddress, InvalidOwner, Unauthorized

logger = logging.getLogger(__name__)

ZERO_ADDRESS = "0x" + "0" * 40


def generate_address() -> str:
    """Return a fresh 20-byte hex identity."""
    return "0x" + secrets.token_hex(20)


def is_valid_identity(identity: Any) -> bool:
    return isinstance(identity, str) and bool(identity) and identity != ZERO_ADDRESS


def require_identity(identity: Any, field_name: str = "address") -> str:
    """Return `identity` unchanged or raise InvalidAddress."""
    if not is_valid_identity(identity):
        raise InvalidAddress(identity, field_name=field_name)
    return identity


@dataclass(frozen=True)
class EventRecord:
    """One emitted event: name, emitting component and its arguments."""
    name: str
    emitter: str
    args: Dict[str, Any] = field(default_factory=dict)


class Ownable:
    """
    Base for components guarded by a single owner identity.

    Subclasses get a re-entrant lock (`_lock`) that serialises their public
    operations, an event log (`events`) and `describe()`, which reports the
    component's interface for the deployment record.

    Events are appended only; an enclosing atomic operation that fails
    discards the events it caused via `_event_mark`/`_discard_events_since`.
    """

    component_tag = "Ownable"

    def __init__(self, owner: str, address: Optional[str] = None):
        self._owner = require_identity(owner, field_name="owner")
        self.address = require_identity(address, "address") if address is not None else generate_address()
        self._lock = threading.RLock()
        self.events: List[EventRecord] = []

    @property
    def owner(self) -> str:
        return self._owner

    def _only_owner(self, caller: Any, operation: str) -> None:
        if caller != self._owner:
            raise Unauthorized(caller, self._owner, f"{self.component_tag}.{operation}")

    def _emit(self, name: str, **args: Any) -> EventRecord:
        record = EventRecord(name=name, emitter=self.address, args=args)
        with self._lock:
            self.events.append(record)
        return record

    def events_named(self, name: str) -> List[EventRecord]:
        with self._lock:
            return [e for e in self.events if e.name == name]

    def _event_mark(self) -> int:
        with self._lock:
            return len(self.events)

    def _discard_events_since(self, mark: int) -> None:
        with self._lock:
            del self.events[mark:]

    def transfer_ownership(self, new_owner: str, caller: str) -> None:
        """
        Hand the owner capability to `new_owner`.

        The previous owner loses every privileged right as soon as this
        returns; there is no pending/accept step.

        Raises:
            Unauthorized: caller is not the current owner
            InvalidOwner: new_owner is empty or the zero identity
        """
        with self._lock:
            self._only_owner(caller, "transfer_ownership")
            if not is_valid_identity(new_owner):
                raise InvalidOwner(new_owner)
            previous = self._owner
            self._owner = new_owner
            self._emit("OwnershipTransferred", previous_owner=previous, new_owner=new_owner)
        logger.info(f"[{self.component_tag}] Ownership transferred: {previous} -> {new_owner}")

    def describe(self) -> dict:
        """Return a JSON-serialisable description of this component and its public operations."""
        operations = {}
        for name, member in inspect.getmembers(type(self), predicate=inspect.isfunction):
            if name.startswith("_"):
                continue
            operations[name] = str(inspect.signature(member))
        return {
            "kind": type(self).__name__,
            "address": self.address,
            "owner": self._owner,
            "operations": operations,
        }
