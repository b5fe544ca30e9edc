"""Copy-count bookkeeping for catalog items.

``reserve`` and ``release`` are single conditional ``UPDATE`` statements,
so the database never lets ``available_copies`` leave ``[0, total_copies]``
even if two callers race.  Callers that need to read the counters and then
write them (the borrowing flow) hold :meth:`InventoryLedger.hold` around
their transaction and call :meth:`InventoryLedger.lock` inside it.
"""

import logging
import threading
from contextlib import contextmanager

from django.db import transaction
from django.db.models import F
from django.utils import timezone

from .exceptions import ItemNotFound, OutOfStock
from .models import Item

logger = logging.getLogger(__name__)


class ItemLocks:
    """Striped in-process locks keyed by item id.

    SQLite ignores ``SELECT ... FOR UPDATE``, so writers on the same item in
    one process are serialised here as well as by the row lock.
    """

    def __init__(self, stripes=64):
        self._locks = [threading.Lock() for _ in range(stripes)]

    @contextmanager
    def hold(self, item_id):
        lock = self._locks[hash(int(item_id)) % len(self._locks)]
        with lock:
            yield


class InventoryLedger:
    def __init__(self, locks=None):
        self.locks = locks or _default_locks

    def hold(self, item_id):
        return self.locks.hold(item_id)

    def lock(self, item_id):
        """Read the item row with an exclusive lock held until commit."""
        try:
            return Item.objects.select_for_update().active().get(pk=item_id)
        except Item.DoesNotExist:
            raise ItemNotFound(item_id) from None

    def _exists(self, item_id, include_deleted=False):
        qs = Item.objects.all() if include_deleted else Item.objects.active()
        return qs.filter(pk=item_id).exists()

    def reserve(self, item_id):
        updated = (
            Item.objects.active()
            .filter(pk=item_id, available_copies__gt=0)
            .update(available_copies=F("available_copies") - 1, updated_at=timezone.now())
        )
        if updated:
            logger.debug("Reserved one copy of item %s", item_id)
            return
        if not self._exists(item_id):
            raise ItemNotFound(item_id)
        raise OutOfStock(item_id)

    def release(self, item_id):
        """Put one copy back on the shelf.

        Soft-deleted items still take their copies back, so loans on a
        withdrawn item can always be returned.
        """
        updated = (
            Item.objects
            .filter(pk=item_id, available_copies__lt=F("total_copies"))
            .update(available_copies=F("available_copies") + 1, updated_at=timezone.now())
        )
        if updated:
            logger.debug("Released one copy of item %s", item_id)
            return
        if not self._exists(item_id, include_deleted=True):
            raise ItemNotFound(item_id)
        logger.warning(
            "Release of item %s ignored: available copies already at total", item_id
        )

    def set_total_copies(self, item_id, total):
        """Change an item's total, moving the available count by the same delta.

        The available count is clamped into ``[0, total]``.
        """
        total = int(total)
        if total < 0:
            raise ValueError("total_copies cannot be negative")
        with self.hold(item_id), transaction.atomic():
            item = self.lock(item_id)
            delta = total - item.total_copies
            item.total_copies = total
            item.available_copies = min(max(item.available_copies + delta, 0), total)
            item.save(update_fields=["total_copies", "available_copies", "updated_at"])
        logger.info("Item %s total copies set to %s", item_id, total)
        return item


_default_locks = ItemLocks()
