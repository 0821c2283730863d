"""
Batch processing of inbound items of one kind.

Items are handled in chunks (50, or 100 for episodes and tracks). Each
item's resolve + create-or-update is one committed unit, performed while
holding the identity lock for (kind, client id, client item id). Item
failures are rolled back, logged and counted as skipped; the batch goes on.
"""

from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import List, Optional, Callable, Awaitable, Dict, Tuple
import asyncio
import logging

from models.base import MediaKind
from schemas.media import InboundItem
from mediasync.identity import IdentityResolver
from mediasync.kinds import chunk_size_for
from mediasync.merge import merge_items, new_item_from_inbound
from core.exceptions import ItemProcessingError, UnattributableItemError

logger = logging.getLogger(__name__)

# on_progress(processed, skipped, total), called after every chunk
ProgressCallback = Callable[[int, int, int], Awaitable[None]]

IdentityKey = Tuple[MediaKind, int, str]


class IdentityLocks:
    """
    In-process locks keyed by item identity.

    One instance is shared by every run of an orchestrator so that two
    concurrent resolutions of the same client item cannot both create.
    Locks are dropped once no task holds or waits on them.
    """

    def __init__(self):
        self._locks: Dict[IdentityKey, asyncio.Lock] = {}
        self._waiters: Dict[IdentityKey, int] = {}

    @asynccontextmanager
    async def hold(self, key: IdentityKey):
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[key] -= 1
            if not self._waiters[key]:
                del self._waiters[key]
                del self._locks[key]


@dataclass
class BatchResult:
    """Counters plus per-item canonical ids aligned with the input"""
    total: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0
    item_ids: List[Optional[int]] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return self.created + self.updated


class BatchProcessor:
    """Resolves, merges and persists inbound items, isolating item failures"""

    def __init__(self, repository, locks: Optional[IdentityLocks] = None, resolver: Optional[IdentityResolver] = None):
        self.repository = repository
        self.locks = locks if locks is not None else IdentityLocks()
        self.resolver = resolver if resolver is not None else IdentityResolver(repository)

    async def process(
        self,
        items: List[InboundItem],
        client_id: int,
        kind: MediaKind,
        on_progress: Optional[ProgressCallback] = None
    ) -> BatchResult:
        """
        Reconcile a collection of inbound items of one kind.

        Args:
            items: Inbound items, all of `kind`
            client_id: The syncing external client
            kind: Media kind of the batch
            on_progress: Awaited after each chunk with (processed, skipped, total)

        Returns:
            BatchResult with item_ids[i] the canonical id of items[i], or
            None if that item was skipped
        """
        result = BatchResult(total=len(items))
        size = chunk_size_for(kind)

        for start in range(0, len(items), size):
            chunk = items[start:start + size]
            for item in chunk:
                result.item_ids.append(await self._process_item(item, client_id, kind, result))

            logger.debug(
                f"Processed chunk of {len(chunk)} {kind.value} items "
                f"({result.processed + result.skipped}/{result.total})"
            )
            if on_progress is not None:
                await on_progress(result.processed, result.skipped, result.total)

        return result

    async def _process_item(
        self,
        item: InboundItem,
        client_id: int,
        kind: MediaKind,
        result: BatchResult
    ) -> Optional[int]:
        client_item_id = item.client_item_id(client_id)
        try:
            if item.kind != kind:
                raise ItemProcessingError(
                    f"Inbound {item.kind.value} item in a {kind.value} batch",
                    context={"client_id": client_id, "client_item_id": client_item_id}
                )
            if not client_item_id:
                raise UnattributableItemError(
                    "Inbound item has no identifier for the syncing client",
                    context={"client_id": client_id, "kind": kind.value, "title": item.title}
                )
            if kind == MediaKind.SEASON:
                self._coerce_season_number(item, client_id)

            async with self.locks.hold((kind, client_id, client_item_id)):
                existing = await self.resolver.resolve(item, client_id)
                if existing is None:
                    saved = await self.repository.create(new_item_from_inbound(item, client_id))
                    result.created += 1
                else:
                    saved = await self.repository.update(merge_items(existing, item, client_id))
                    result.updated += 1
            return saved.id

        except ItemProcessingError as e:
            await self.repository.rollback()
            result.skipped += 1
            logger.warning(
                f"Skipping {kind.value} '{item.title}' from client {client_id}: {e.message}",
                extra={"error_context": e.to_dict()}
            )
            return None

        except Exception as e:
            await self.repository.rollback()
            result.skipped += 1
            error_detail = {
                "kind": kind.value,
                "client_id": client_id,
                "client_item_id": client_item_id,
                "error_type": type(e).__name__,
                "error_message": str(e)
            }
            logger.error(
                f"Unexpected error processing {kind.value} '{item.title}': {str(e)}",
                extra={"error_context": error_detail}
            )
            return None

    @staticmethod
    def _coerce_season_number(item: InboundItem, client_id: int):
        if item.payload.season_number == 0:
            logger.warning(
                f"Season '{item.title}' ({item.client_item_id(client_id)}) from client "
                f"{client_id} has season number 0, storing as 1"
            )
            item.payload.season_number = 1
