"""Single outstanding write per document.

Auto-save transmissions, pending-queue flushes, and reorders for the same
rundown all acquire the same slot, so their requests never overlap on the
wire.
"""

from __future__ import annotations

import asyncio
import logging
from types import TracebackType

LOGGER = logging.getLogger(__name__)


class DocumentWriteSlot:
    """Async mutex guarding writes to one rundown."""

    def __init__(self, document_id: int) -> None:
        self.document_id = document_id
        self._lock = asyncio.Lock()
        self._holder: str | None = None

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    @property
    def holder(self) -> str | None:
        return self._holder

    def acquire_for(self, holder: str) -> _SlotLease:
        """Return an async context manager that holds the slot for ``holder``."""
        return _SlotLease(self, holder)

    async def _acquire(self, holder: str) -> None:
        if self._lock.locked():
            LOGGER.debug(
                "Write slot busy; waiting",
                extra={"document_id": self.document_id, "holder": self._holder, "waiter": holder},
            )
        await self._lock.acquire()
        self._holder = holder

    def _release(self) -> None:
        self._holder = None
        self._lock.release()


class _SlotLease:
    def __init__(self, slot: DocumentWriteSlot, holder: str) -> None:
        self._slot = slot
        self._holder = holder

    async def __aenter__(self) -> DocumentWriteSlot:
        await self._slot._acquire(self._holder)  # pylint: disable=protected-access
        return self._slot

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self._slot._release()  # pylint: disable=protected-access
