"""
ModelPortfolioRegistry: named target-weight templates over asset tokens.

A template is an ordered set of (asset, weight) allocations in basis points.
Weights are validated to sum to exactly 10000 on create and on update; a
rejected update leaves the stored template untouched.

Updates are propagated to the linked investor manager (the InvestorLedger)
before the call returns, so every assignee is rebalanced as part of the same
operation. If propagation fails the previous allocation set is restored.
"""

import logging
from dataclasses import dataclass, replace
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

from .allocation_math import BASIS_POINTS_TOTAL
from .errors import DuplicateAsset, InvalidWeights, NotFound
from .ownership import Ownable, is_valid_identity

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Allocation:
    """One (asset, target weight) pair. Weight is in basis points."""
    asset: str
    weight: int


@dataclass(frozen=True)
class ModelPortfolioTemplate:
    """Immutable snapshot of a stored template."""
    id: int
    allocations: Tuple[Allocation, ...]
    version: int = 1
    name: Optional[str] = None

    @property
    def assets(self) -> List[str]:
        return [a.asset for a in self.allocations]

    def weights(self) -> Dict[str, int]:
        return {a.asset: a.weight for a in self.allocations}

    def pairs(self) -> List[Tuple[str, int]]:
        return [(a.asset, a.weight) for a in self.allocations]


AllocationLike = Union[Allocation, Tuple[str, int]]


def allocations_from_lists(assets: Sequence[str], weights: Sequence[int]) -> List[Allocation]:
    """Build allocations from parallel asset/weight lists."""
    if len(assets) != len(weights):
        raise InvalidWeights(
            list(weights), f"must match assets in length ({len(assets)} assets, {len(weights)} weights)"
        )
    return [Allocation(asset, weight) for asset, weight in zip(assets, weights)]


def validate_allocations(allocations: Iterable[AllocationLike]) -> Tuple[Allocation, ...]:
    """
    Normalise and validate an allocation set.

    Checks, in order: non-empty, well-formed asset identities, integer
    non-negative weights, no duplicate asset, weights sum to BASIS_POINTS_TOTAL.

    Returns:
        Tuple of Allocation in the given order.

    Raises:
        InvalidWeights: empty set, malformed entry, bad weight or wrong sum
        DuplicateAsset: an asset appears twice
    """
    normalised: List[Allocation] = []
    for item in allocations:
        if isinstance(item, Allocation):
            normalised.append(item)
            continue
        try:
            asset, weight = item
        except (TypeError, ValueError):
            raise InvalidWeights(item, "entries must be (asset, weight) pairs")
        normalised.append(Allocation(asset, weight))

    if not normalised:
        raise InvalidWeights([], "must contain at least one allocation")

    seen = set()
    for allocation in normalised:
        if not is_valid_identity(allocation.asset):
            raise InvalidWeights(allocation.asset, "must reference a valid asset identity")
        weight = allocation.weight
        if isinstance(weight, bool) or not isinstance(weight, int):
            raise InvalidWeights(weight, "must be integers in basis points")
        if weight < 0:
            raise InvalidWeights(weight, "must be non-negative")
        if allocation.asset in seen:
            raise DuplicateAsset(allocation.asset)
        seen.add(allocation.asset)

    total = sum(a.weight for a in normalised)
    if total != BASIS_POINTS_TOTAL:
        raise InvalidWeights(
            [a.weight for a in normalised], f"must sum to {BASIS_POINTS_TOTAL} (sum={total})"
        )
    return tuple(normalised)


class ModelPortfolioRegistry(Ownable):
    """Stores model portfolio templates and notifies the linked investor manager of updates."""

    component_tag = "ModelPortfolioRegistry"

    def __init__(self, *, owner: str, address: Optional[str] = None):
        super().__init__(owner=owner, address=address)
        self._templates: Dict[int, ModelPortfolioTemplate] = {}
        self._next_id = 1
        self._investor_manager = None
        logger.info(f"[ModelPortfolioRegistry] Initialized: owner={owner}, address={self.address}")

    def link_investor_manager(self, manager, caller: str) -> None:
        """
        Link the component that owns investor state.

        `manager.on_template_updated(template_id)` is invoked after every
        successful update. Linking again replaces the previous manager.
        """
        with self._lock:
            self._only_owner(caller, "link_investor_manager")
            if not callable(getattr(manager, "on_template_updated", None)):
                raise TypeError(f"{manager!r} has no on_template_updated(template_id) hook")
            self._investor_manager = manager
            self._emit("InvestorManagerLinked", manager=getattr(manager, "address", repr(manager)))
        logger.info(f"[ModelPortfolioRegistry] Linked investor manager {getattr(manager, 'address', manager)}")

    @property
    def investor_manager(self):
        return self._investor_manager

    def create_template(
        self,
        allocations: Iterable[AllocationLike],
        caller: str,
        name: Optional[str] = None,
    ) -> int:
        """
        Validate and store a new template.

        Returns:
            The new template id (ids start at 1 and increase monotonically)
        """
        with self._lock:
            self._only_owner(caller, "create_template")
            validated = validate_allocations(allocations)
            template_id = self._next_id
            self._templates[template_id] = ModelPortfolioTemplate(
                id=template_id, allocations=validated, version=1, name=name
            )
            self._next_id += 1
            self._emit("ModelPortfolioCreated", template_id=template_id)

        logger.info(
            f"[ModelPortfolioRegistry] Created template {template_id}"
            f"{f' ({name})' if name else ''}: "
            + ", ".join(f"{a.asset}={a.weight}" for a in validated)
        )
        return template_id

    def update_template(
        self,
        template_id: int,
        allocations: Iterable[AllocationLike],
        caller: str,
    ) -> ModelPortfolioTemplate:
        """
        Replace a template's allocation set and propagate it to assignees.

        Raises:
            Unauthorized, NotFound, InvalidWeights, DuplicateAsset, and anything
            raised by the investor manager while rebalancing (in which case the
            previous allocation set is restored).
        """
        with self._lock:
            self._only_owner(caller, "update_template")
            previous = self.get_template(template_id)
            validated = validate_allocations(allocations)
            updated = replace(previous, allocations=validated, version=previous.version + 1)
            self._templates[template_id] = updated
            try:
                if self._investor_manager is not None:
                    self._investor_manager.on_template_updated(template_id)
            except Exception:
                self._templates[template_id] = previous
                logger.warning(
                    f"[ModelPortfolioRegistry] Update of template {template_id} rolled back: "
                    f"investor manager failed to rebalance"
                )
                raise
            self._emit("ModelPortfolioUpdated", template_id=template_id, version=updated.version)

        logger.info(
            f"[ModelPortfolioRegistry] Updated template {template_id} to version {updated.version}: "
            + ", ".join(f"{a.asset}={a.weight}" for a in validated)
        )
        return updated

    def get_template(self, template_id: int) -> ModelPortfolioTemplate:
        with self._lock:
            template = self._templates.get(template_id)
        if template is None:
            raise NotFound("template", template_id)
        return template

    def has_template(self, template_id: int) -> bool:
        with self._lock:
            return template_id in self._templates

    def template_ids(self) -> List[int]:
        with self._lock:
            return list(self._templates)
