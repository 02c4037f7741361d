from typing import Callable, Dict, List, Optional, Set

from infraviz.errors import InvalidTransitionError
from infraviz.schemas import DeployStatus

TRANSITIONS: Dict[str, Set[str]] = {
    "idle": {"deploying"},
    "deploying": {"deployed", "failed"},
    "deployed": {"deploying"},
    "failed": {"deploying"},
}


class DeployStatusMachine:
    """
    Deploy lifecycle of one stack: idle -> deploying -> deployed | failed,
    and back to deploying on the next attempt.

    on_change is called after every accepted transition (the service uses it
    to persist the record).
    """

    def __init__(self, status: DeployStatus = "idle", on_change: Optional[Callable[[DeployStatus], None]] = None):
        if status not in TRANSITIONS:
            raise ValueError(f"Unknown deploy status: {status}")
        self.status: DeployStatus = status
        self.history: List[DeployStatus] = [status]
        self.on_change = on_change

    def can_transition(self, target: DeployStatus) -> bool:
        return target in TRANSITIONS[self.status]

    def transition(self, target: DeployStatus) -> DeployStatus:
        if not self.can_transition(target):
            raise InvalidTransitionError(self.status, target)
        self.status = target
        self.history.append(target)
        if self.on_change:
            self.on_change(target)
        return target

    def start(self) -> DeployStatus:
        return self.transition("deploying")

    def succeed(self) -> DeployStatus:
        return self.transition("deployed")

    def fail(self) -> DeployStatus:
        return self.transition("failed")
