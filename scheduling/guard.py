"""
Resource Generation Guard

Optimistic concurrency for resource calendars. Each Resource carries a
`generation` counter. A writer reads the generation before running the
Overlap Detector, performs its booking write, then bumps the generation with
a compare-and-swap. If another booking on the same resource committed in
between, the swap fails and the writer must undo its write.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Optional

from core.errors import AvailabilityConflict, NotFoundError, PartialFailureError, StoreError
from repositories.base import RecordStore
from repositories.collections import RESOURCES


logger = logging.getLogger(__name__)


class ResourceGuard:
    def __init__(self, store: RecordStore, resource_id: str) -> None:
        self.store = store
        self.resource_id = resource_id
        self._seen: Optional[int] = None
        self._taken = False

    async def snapshot(self) -> "ResourceGuard":
        record = await self.store.find_one(RESOURCES, {"id": self.resource_id})
        if record is None:
            raise NotFoundError(f"Resource {self.resource_id} not found", details={"resource_id": self.resource_id})
        # Legacy rows may lack the counter; None matches a missing field on commit
        self._seen = record.get("generation")
        self._taken = True
        return self

    async def commit(self) -> None:
        if not self._taken:
            raise RuntimeError("snapshot() must be called before commit()")
        next_generation = (self._seen or 0) + 1
        swapped = await self.store.update_one(
            RESOURCES,
            self.resource_id,
            {"generation": next_generation},
            expected={"generation": self._seen},
        )
        if not swapped:
            logger.warning(
                "guard.generation_conflict",
                extra={"resource_id": self.resource_id, "seen": self._seen},
            )
            raise AvailabilityConflict(
                "Another booking for this resource was saved at the same time. "
                "Reload the calendar and try again.",
                details={"resource_id": self.resource_id},
            )
        self._seen = next_generation

    async def commit_or_undo(self, undo: Callable[[], Awaitable[Any]], *, appointment_id: str) -> None:
        """
        Commit, or run `undo` to take back the caller's booking write and re-raise.

        If `undo` itself fails the booking is left behind, and PartialFailureError
        reports it so it can be reconciled.
        """
        try:
            await self.commit()
        except Exception as exc:
            try:
                await undo()
            except StoreError as undo_exc:
                logger.error(
                    "guard.compensation_failed",
                    extra={
                        "resource_id": self.resource_id,
                        "appointment_id": appointment_id,
                        "error": undo_exc.message,
                    },
                )
                raise PartialFailureError(
                    f"Could not save the booking and could not undo the change to appointment "
                    f"{appointment_id}; manual reconciliation is needed.",
                    appointment_id=appointment_id,
                    compensated=False,
                    details={"resource_id": self.resource_id, "cause": type(exc).__name__},
                ) from exc
            logger.warning(
                "guard.write_undone",
                extra={"resource_id": self.resource_id, "appointment_id": appointment_id, "cause": type(exc).__name__},
            )
            raise
