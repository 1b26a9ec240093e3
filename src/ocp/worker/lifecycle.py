"""Per-instance lifecycle state machine."""

from datetime import datetime
from typing import Dict, FrozenSet, List, Tuple

from ..core.models import WorkerState
from ..errors import LifecycleError
from ..utils.logging import get_logger

logger = get_logger(__name__)

_ALLOWED: Dict[WorkerState, FrozenSet[WorkerState]] = {
    WorkerState.INSTALLING: frozenset({WorkerState.INSTALLED, WorkerState.FAILED}),
    WorkerState.INSTALLED: frozenset({WorkerState.ACTIVATING, WorkerState.REDUNDANT}),
    WorkerState.ACTIVATING: frozenset({WorkerState.ACTIVATED, WorkerState.REDUNDANT}),
    WorkerState.ACTIVATED: frozenset({WorkerState.ACTIVE, WorkerState.REDUNDANT}),
    WorkerState.ACTIVE: frozenset({WorkerState.REDUNDANT}),
    WorkerState.FAILED: frozenset(),
    WorkerState.REDUNDANT: frozenset(),
}


class Lifecycle:
    """
    Tracks the phase of one proxy instance.

    Legal path: installing -> installed -> activating -> activated -> active.
    Install may end in ``failed``; any live phase may be superseded and
    become ``redundant``. Terminal states accept no further transitions.
    """

    def __init__(self, worker_id: str) -> None:
        self.worker_id = worker_id
        self.state = WorkerState.INSTALLING
        self.history: List[Tuple[WorkerState, datetime]] = [(self.state, datetime.now())]

    def transition(self, new_state: WorkerState) -> None:
        if new_state not in _ALLOWED[self.state]:
            raise LifecycleError(
                f"Worker {self.worker_id}: illegal transition {self.state.value} -> {new_state.value}"
            )
        logger.info(
            f"Worker {self.worker_id}: {self.state.value} -> {new_state.value}",
            extra={"worker_id": self.worker_id, "state": new_state.value},
        )
        self.state = new_state
        self.history.append((new_state, datetime.now()))

    def require(self, *states: WorkerState) -> None:
        if self.state not in states:
            expected = ", ".join(s.value for s in states)
            raise LifecycleError(f"Worker {self.worker_id} is {self.state.value}, expected one of: {expected}")

    @property
    def is_live(self) -> bool:
        return self.state in (WorkerState.ACTIVATED, WorkerState.ACTIVE)
