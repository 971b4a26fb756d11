"""Per-request cancellation tokens."""

import asyncio
from dataclasses import dataclass, field

from parkiq.domain.errors import OperationCancelled


@dataclass
class CancellationToken:
    """Marks an in-flight request as irrelevant.

    Each token carries the generation of the fetch cycle that created it, so a
    response can be matched against the newest cycle without consulting any
    shared field. Cancelling is idempotent and never raises.
    """

    generation: int = 0
    _cancelled: bool = False
    _tasks: list[asyncio.Task] = field(default_factory=list)

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        """Cancel the token and any tasks bound to it."""
        if self._cancelled:
            return
        self._cancelled = True
        for task in self._tasks:
            if not task.done():
                task.cancel()
        self._tasks.clear()

    def bind(self, task: asyncio.Task) -> None:
        """Cancel ``task`` together with this token."""
        if self._cancelled:
            task.cancel()
            return
        self._tasks.append(task)

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise OperationCancelled(self.generation)
