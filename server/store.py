"""
Room storage layer.

Provides a unified key-value interface (room slug → Room) with three backends:
  - FileStore      : one JSON document per room on disk (default)
  - DynamoDBStore  : one item per room in AWS DynamoDB (production)
  - LocalStore     : in-memory dict (tests / fallback)

Every read returns a fresh Room, so callers can mutate what they load without
touching the stored copy until they save it. Failures surface as StoreError.

The factory `get_store()` picks the backend based on STORE_MODE.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from abc import ABC, abstractmethod
from pathlib import Path

from models import Room

logger = logging.getLogger("planning-poker.store")

_SLUG_RE = re.compile(r"^[A-Za-z0-9_-]{1,128}$")


class StoreError(Exception):
    """A store read or write failed."""


# ── Abstract base ────────────────────────────────────────────────────────────

class RoomStore(ABC):
    """Interface every store must implement."""

    @abstractmethod
    async def load(self, slug: str) -> Room | None:
        """Return the stored room, or None if there is none."""
        ...

    @abstractmethod
    async def save(self, slug: str, room: Room) -> None:
        """Overwrite the stored room (last writer wins)."""
        ...

    @abstractmethod
    async def delete(self, slug: str) -> None:
        """Remove the room; deleting a missing room is not an error."""
        ...

    @abstractmethod
    async def list_slugs(self) -> list[str]:
        """Return the slug of every stored room."""
        ...


# ── In-memory store ──────────────────────────────────────────────────────────

class LocalStore(RoomStore):
    """In-memory store — data is lost on restart."""

    def __init__(self) -> None:
        self._docs: dict[str, dict] = {}
        self._lock = asyncio.Lock()
        logger.info("LocalStore initialised (in-memory, non-persistent)")

    async def load(self, slug: str) -> Room | None:
        async with self._lock:
            doc = self._docs.get(slug)
        return Room.from_document(doc) if doc is not None else None

    async def save(self, slug: str, room: Room) -> None:
        doc = room.to_document()
        async with self._lock:
            self._docs[slug] = doc

    async def delete(self, slug: str) -> None:
        async with self._lock:
            self._docs.pop(slug, None)

    async def list_slugs(self) -> list[str]:
        async with self._lock:
            return list(self._docs)


# ── File store ───────────────────────────────────────────────────────────────

class FileStore(RoomStore):
    """
    Stores each room as `<rooms_dir>/<slug>.json`.

    Slugs that are not plain `[A-Za-z0-9_-]` names never touch the
    filesystem: they load as missing and refuse to save.
    """

    def __init__(self, rooms_dir: Path | str) -> None:
        self._dir = Path(rooms_dir)
        self._dir.mkdir(parents=True, exist_ok=True)
        logger.info("FileStore initialised — dir=%s", self._dir)

    # ── helpers ──────────────────────────────────────────────────────────

    def _path(self, slug: str) -> Path | None:
        if not _SLUG_RE.match(slug or ""):
            return None
        return self._dir / f"{slug}.json"

    def _sync_load(self, slug: str) -> Room | None:
        path = self._path(slug)
        if path is None or not path.exists():
            return None
        try:
            doc = json.loads(path.read_text(encoding="utf-8"))
            if not isinstance(doc, dict):
                raise ValueError("not a JSON object")
            return Room.from_document(doc)
        except (OSError, ValueError) as exc:
            raise StoreError(f"Failed to read room {slug}: {exc}") from exc

    def _sync_save(self, slug: str, room: Room) -> None:
        path = self._path(slug)
        if path is None:
            raise StoreError(f"Invalid room slug: {slug!r}")
        try:
            self._dir.mkdir(parents=True, exist_ok=True)
            path.write_text(
                json.dumps(room.to_document(), indent=2, ensure_ascii=False),
                encoding="utf-8",
            )
        except OSError as exc:
            raise StoreError(f"Failed to write room {slug}: {exc}") from exc

    def _sync_delete(self, slug: str) -> None:
        path = self._path(slug)
        if path is None:
            return
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            raise StoreError(f"Failed to delete room {slug}: {exc}") from exc

    def _sync_list(self) -> list[str]:
        try:
            return sorted(p.stem for p in self._dir.glob("*.json"))
        except OSError as exc:
            raise StoreError(f"Failed to list rooms: {exc}") from exc

    # ── async wrappers (run blocking file I/O in threadpool) ─────────────

    async def load(self, slug: str) -> Room | None:
        return await asyncio.to_thread(self._sync_load, slug)

    async def save(self, slug: str, room: Room) -> None:
        await asyncio.to_thread(self._sync_save, slug, room)

    async def delete(self, slug: str) -> None:
        await asyncio.to_thread(self._sync_delete, slug)

    async def list_slugs(self) -> list[str]:
        return await asyncio.to_thread(self._sync_list)


# ── DynamoDB store ───────────────────────────────────────────────────────────

class DynamoDBStore(RoomStore):
    """
    Stores each room as one DynamoDB item.

    Table schema:
      pk   (S) — partition key, the room slug
      room (S) — the room document as JSON

    Takes a boto3 ``Table`` resource; use ``connect()`` to build one from
    settings and create the table on first run.
    """

    def __init__(self, table) -> None:
        self._table = table

    @classmethod
    def connect(cls, table_name: str, region: str,
                aws_key: str | None = None,
                aws_secret: str | None = None) -> "DynamoDBStore":
        import boto3
        import botocore.exceptions
        from botocore.config import Config as BotoConfig

        credentials = {}
        if aws_key and aws_secret:
            credentials = {"aws_access_key_id": aws_key, "aws_secret_access_key": aws_secret}
        dynamo = boto3.resource(
            "dynamodb", region_name=region,
            config=BotoConfig(retries={"max_attempts": 3, "mode": "adaptive"}),
            **credentials,
        )
        table = dynamo.Table(table_name)

        try:
            table.load()
        except botocore.exceptions.ClientError as exc:
            if exc.response["Error"]["Code"] != "ResourceNotFoundException":
                raise
            logger.warning("Rooms table %s missing — creating it", table_name)
            table = dynamo.create_table(
                TableName=table_name,
                KeySchema=[{"AttributeName": "pk", "KeyType": "HASH"}],
                AttributeDefinitions=[{"AttributeName": "pk", "AttributeType": "S"}],
                BillingMode="PAY_PER_REQUEST",
            )
            table.wait_until_exists()

        logger.info("DynamoDBStore ready — table=%s region=%s", table_name, region)
        return cls(table)

    # ── helpers ──────────────────────────────────────────────────────────

    def _sync_load(self, slug: str) -> Room | None:
        resp = self._table.get_item(Key={"pk": slug})
        item = resp.get("Item")
        if not item:
            return None
        return Room.from_document(json.loads(item["room"]))

    def _sync_save(self, slug: str, room: Room) -> None:
        self._table.put_item(Item={"pk": slug, "room": json.dumps(room.to_document())})

    def _sync_delete(self, slug: str) -> None:
        self._table.delete_item(Key={"pk": slug})

    def _sync_list(self) -> list[str]:
        slugs: list[str] = []
        kwargs: dict = {"ProjectionExpression": "pk"}
        while True:
            resp = self._table.scan(**kwargs)
            slugs.extend(item["pk"] for item in resp.get("Items", []))
            last_key = resp.get("LastEvaluatedKey")
            if not last_key:
                return slugs
            kwargs["ExclusiveStartKey"] = last_key

    async def _call(self, fn, *args):
        import botocore.exceptions

        try:
            return await asyncio.to_thread(fn, *args)
        except (botocore.exceptions.BotoCoreError,
                botocore.exceptions.ClientError, ValueError) as exc:
            raise StoreError(str(exc)) from exc

    # ── async wrappers (run blocking boto3 in threadpool) ────────────────

    async def load(self, slug: str) -> Room | None:
        return await self._call(self._sync_load, slug)

    async def save(self, slug: str, room: Room) -> None:
        await self._call(self._sync_save, slug, room)

    async def delete(self, slug: str) -> None:
        await self._call(self._sync_delete, slug)

    async def list_slugs(self) -> list[str]:
        return await self._call(self._sync_list)


# ── Factory ──────────────────────────────────────────────────────────────────

_store: RoomStore | None = None


def get_store() -> RoomStore:
    """Return the singleton RoomStore based on config."""
    global _store
    if _store is not None:
        return _store

    from config import settings

    if settings.STORE_MODE == "dynamodb":
        try:
            _store = DynamoDBStore.connect(
                table_name=settings.DYNAMODB_TABLE_NAME,
                region=settings.AWS_REGION,
                aws_key=settings.AWS_ACCESS_KEY_ID,
                aws_secret=settings.AWS_SECRET_ACCESS_KEY,
            )
        except Exception:
            logger.exception(
                "Failed to connect to DynamoDB — falling back to LocalStore"
            )
            _store = LocalStore()
    elif settings.STORE_MODE == "file":
        _store = FileStore(settings.ROOMS_DIR)
    else:
        _store = LocalStore()

    return _store
