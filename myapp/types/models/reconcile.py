from enum import Enum
from typing import List, NamedTuple, Optional


class ConvergeOutcome(Enum):
    """What converging a single child object did to the cluster."""

    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    DELETED = "deleted"


class ChildChange(NamedTuple):
    kind: str
    name: str
    outcome: ConvergeOutcome


class ReconcileResult(NamedTuple):
    """Outcome of a successful reconciliation pass.

    `requeue_after` is always None; retry timing belongs to Kopf.
    """

    requeue_after: Optional[float] = None
    changes: List[ChildChange] = []
    status_updated: bool = False

    @property
    def changed(self) -> List[ChildChange]:
        return [c for c in self.changes if c.outcome != ConvergeOutcome.UNCHANGED]
