"""
Two-tier stack record store.

The in-process cache is authoritative while the process lives. Every write
also goes to <workspace_root>/infra-<stackId>/state.json, next to the
stack's Pulumi program, so a restarted process can pick the stack up again.
Durable-tier failures are logged and never reach the caller.
"""
import asyncio
import logging
import os
from contextlib import asynccontextmanager
from typing import Dict, Literal, Optional

from pydantic import BaseModel, ValidationError

from infraviz.schemas import StackRecord

logger = logging.getLogger(__name__)

STATE_FILENAME = "state.json"


class StackLookup(BaseModel):
    """Outcome of a cache-then-durable lookup."""
    record: Optional[StackRecord] = None
    source: Literal["cache", "durable", "missing"] = "missing"

    @property
    def found(self) -> bool:
        return self.record is not None


class StackStore:
    def __init__(self, workspace_root: str = "/tmp"):
        self.workspace_root = workspace_root
        self._cache: Dict[str, StackRecord] = {}

    def stack_dir(self, stack_id: str) -> str:
        return os.path.join(self.workspace_root, f"infra-{stack_id}")

    def state_path(self, stack_id: str) -> str:
        return os.path.join(self.stack_dir(stack_id), STATE_FILENAME)

    def set(self, record: StackRecord) -> bool:
        """Write-through. Returns False when only the cache was updated."""
        self._cache[record.stack_id] = record
        try:
            os.makedirs(self.stack_dir(record.stack_id), exist_ok=True)
            with open(self.state_path(record.stack_id), "w") as f:
                f.write(record.model_dump_json(by_alias=True, indent=2))
            return True
        except (OSError, ValueError) as e:
            logger.warning("Could not persist stack %s, keeping it in memory only: %s", record.stack_id, e)
            return False

    def lookup(self, stack_id: str) -> StackLookup:
        cached = self._cache.get(stack_id)
        if cached is not None:
            return StackLookup(record=cached, source="cache")

        path = self.state_path(stack_id)
        if not os.path.exists(path):
            return StackLookup()

        try:
            with open(path, "r") as f:
                record = StackRecord.model_validate_json(f.read())
        except (OSError, ValueError, ValidationError) as e:
            logger.warning("Ignoring unreadable state file %s: %s", path, e)
            return StackLookup()

        self._cache[stack_id] = record
        return StackLookup(record=record, source="durable")

    def get(self, stack_id: str) -> Optional[StackRecord]:
        return self.lookup(stack_id).record

    def clear_cache(self):
        self._cache.clear()

    def __contains__(self, stack_id: str) -> bool:
        return self.lookup(stack_id).found


class StackLocks:
    """One asyncio.Lock per stack id; update and deploy hold it for read-modify-write.

    An entry lives only while some caller holds or waits on it.
    """

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = {}

    @asynccontextmanager
    async def for_stack(self, stack_id: str):
        lock = self._locks.setdefault(stack_id, asyncio.Lock())
        self._users[stack_id] = self._users.get(stack_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[stack_id] -= 1
            if not self._users[stack_id]:
                del self._users[stack_id]
                del self._locks[stack_id]

    def __len__(self) -> int:
        return len(self._locks)
