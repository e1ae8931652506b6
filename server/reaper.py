"""
Empty-room reaper.

Two-phase mark-then-sweep over every stored room:
  populated            → clear any stale emptiedAt marker
  empty, unmarked      → mark now, look again next cycle
  empty, marked ≥ TTL  → delete
  unreadable marker    → re-mark now, never delete on the same cycle

A room that empties and refills between two sweeps is therefore never
deleted. Rooms are swept under their registry lock, so the reaper cannot
observe a room halfway through a handler's load → save.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable

from models import utcnow
from sessions import SessionRegistry
from store import RoomStore, StoreError

logger = logging.getLogger("planning-poker.reaper")


@dataclass
class SweepReport:
    marked: list[str] = field(default_factory=list)
    unmarked: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


class Reaper:
    """Deletes rooms that have stayed empty longer than the TTL."""

    def __init__(self, store: RoomStore, registry: SessionRegistry,
                 ttl: timedelta = timedelta(minutes=5),
                 clock: Callable[[], datetime] = utcnow) -> None:
        self.store = store
        self.registry = registry
        self.ttl = ttl
        self.clock = clock

    async def sweep(self, now: datetime | None = None) -> SweepReport:
        now = now or self.clock()
        report = SweepReport()
        try:
            slugs = await self.store.list_slugs()
        except StoreError:
            logger.exception("Reaper could not list rooms")
            return report

        for slug in slugs:
            try:
                async with self.registry.lock_for(slug):
                    await self._sweep_room(slug, now, report)
            except StoreError:
                logger.exception("Reaper failed on room %s", slug)
                report.failed.append(slug)
        return report

    async def _sweep_room(self, slug: str, now: datetime, report: SweepReport) -> None:
        room = await self.store.load(slug)
        if room is None:
            return

        if room.users:
            if room.emptied_at is not None:
                room.emptied_at = None
                await self.store.save(slug, room)
                report.unmarked.append(slug)
            return

        if room.emptied_at is None:
            room.emptied_at = now
            await self.store.save(slug, room)
            report.marked.append(slug)
            return

        # An unreadable marker loaded as "now": persist it so the TTL can run out
        if "emptied_at" in room.repaired_instants:
            room.emptied_at = now
            await self.store.save(slug, room)
            report.marked.append(slug)
            return

        if now - room.emptied_at >= self.ttl:
            await self.store.delete(slug)
            report.deleted.append(slug)
            logger.info(
                "Room %s deleted — empty for more than %d seconds",
                slug, int(self.ttl.total_seconds()),
            )

    async def run(self, interval: float) -> None:
        """Background task: sweeps the store every `interval` seconds."""
        while True:
            await asyncio.sleep(interval)
            try:
                report = await self.sweep()
                if report.deleted or report.marked:
                    logger.debug(
                        "Sweep: marked=%d deleted=%d", len(report.marked), len(report.deleted),
                    )
            except Exception:
                logger.exception("Error in reaper loop")
