"""
Redis-backed WorkItemStore.

Documents are stored as JSON strings (pydantic model_dump_json). commit()
uses Redis optimistic locking: WATCH every key in the batch, re-check the
versions, then MULTI/EXEC. If another client touches a watched key in
between, EXEC aborts with WatchError and the batch is reported as a
ConcurrentModification.

Key layout (prefix defaults to "stitchfloor"):
    {prefix}:item:{id}          WorkItem JSON
    {prefix}:items              set of all WorkItem ids
    {prefix}:lot:{lot}          WipLot JSON
    {prefix}:lot-items:{lot}    set of WorkItem ids in the lot
    {prefix}:lots               set of lot numbers
    {prefix}:operator:{id}      OperatorProfile JSON
    {prefix}:operators          set of operator ids
"""

from typing import Callable, List, Optional, Sequence

import redis

from ..errors import ConcurrentModification, NotFound, PersistenceFailure
from ..models import OperatorProfile, WipLot, WorkItem, WorkItemStatus, utc_now
from .base import WorkItemStore


class RedisWorkItemStore(WorkItemStore):
    """WorkItemStore over a Redis server."""

    def __init__(self, client: "redis.Redis", prefix: str = "stitchfloor"):
        self._redis = client
        self._prefix = prefix

    @classmethod
    def from_url(cls, url: str, prefix: str = "stitchfloor") -> "RedisWorkItemStore":
        return cls(redis.Redis.from_url(url, decode_responses=True), prefix=prefix)

    def _key(self, *parts: str) -> str:
        return ":".join((self._prefix,) + parts)

    def _call(self, fn: Callable, *args):
        try:
            return fn(*args)
        except redis.RedisError as e:
            raise PersistenceFailure(f"Redis error: {e}") from e

    def _load_items(self, ids) -> List[WorkItem]:
        ids = sorted(ids)
        if not ids:
            return []
        raw = self._call(self._redis.mget, [self._key("item", i) for i in ids])
        return self.sort_for_lot([WorkItem.model_validate_json(r) for r in raw if r])

    # -- lots ---------------------------------------------------------------

    def save_lot(self, lot: WipLot) -> None:
        pipe = self._redis.pipeline()
        pipe.set(self._key("lot", lot.lot_number), lot.model_dump_json())
        pipe.sadd(self._key("lots"), lot.lot_number)
        self._call(pipe.execute)

    def get_lot(self, lot_number: str) -> WipLot:
        raw = self._call(self._redis.get, self._key("lot", lot_number))
        if raw is None:
            raise NotFound("Lot", lot_number)
        return WipLot.model_validate_json(raw)

    def list_lots(self) -> List[WipLot]:
        numbers = sorted(self._call(self._redis.smembers, self._key("lots")))
        if not numbers:
            return []
        raw = self._call(self._redis.mget, [self._key("lot", n) for n in numbers])
        return [WipLot.model_validate_json(r) for r in raw if r]

    def delete_lot(self, lot_number: str) -> int:
        if not self._call(self._redis.exists, self._key("lot", lot_number)):
            raise NotFound("Lot", lot_number)
        ids = self._call(self._redis.smembers, self._key("lot-items", lot_number))
        pipe = self._redis.pipeline()
        for item_id in ids:
            pipe.delete(self._key("item", item_id))
            pipe.srem(self._key("items"), item_id)
        pipe.delete(self._key("lot-items", lot_number))
        pipe.delete(self._key("lot", lot_number))
        pipe.srem(self._key("lots"), lot_number)
        self._call(pipe.execute)
        return len(ids)

    # -- operators ----------------------------------------------------------

    def save_operator(self, operator: OperatorProfile) -> None:
        pipe = self._redis.pipeline()
        pipe.set(self._key("operator", operator.id), operator.model_dump_json())
        pipe.sadd(self._key("operators"), operator.id)
        self._call(pipe.execute)

    def get_operator(self, operator_id: str) -> OperatorProfile:
        raw = self._call(self._redis.get, self._key("operator", operator_id))
        if raw is None:
            raise NotFound("Operator", operator_id)
        return OperatorProfile.model_validate_json(raw)

    def list_operators(self) -> List[OperatorProfile]:
        ids = sorted(self._call(self._redis.smembers, self._key("operators")))
        if not ids:
            return []
        raw = self._call(self._redis.mget, [self._key("operator", i) for i in ids])
        return [OperatorProfile.model_validate_json(r) for r in raw if r]

    # -- work items ---------------------------------------------------------

    def get(self, item_id: str) -> WorkItem:
        raw = self._call(self._redis.get, self._key("item", item_id))
        if raw is None:
            raise NotFound("WorkItem", item_id)
        return WorkItem.model_validate_json(raw)

    def list_by_lot(self, lot_number: str) -> List[WorkItem]:
        return self._load_items(self._call(self._redis.smembers, self._key("lot-items", lot_number)))

    def _all_items(self) -> List[WorkItem]:
        return self._load_items(self._call(self._redis.smembers, self._key("items")))

    def list_by_operator(self, operator_id: str) -> List[WorkItem]:
        return [i for i in self._all_items() if i.assigned_operator == operator_id]

    def list_by_status(self, status: WorkItemStatus) -> List[WorkItem]:
        return [i for i in self._all_items() if i.status == status]

    def commit(self, writes: Sequence[WorkItem]) -> List[WorkItem]:
        keys = [self._key("item", w.id) for w in writes]
        with self._redis.pipeline() as pipe:
            try:
                pipe.watch(*keys)
                current = pipe.mget(keys)
                for write, raw in zip(writes, current):
                    stored: Optional[WorkItem] = WorkItem.model_validate_json(raw) if raw else None
                    self.check_write(stored, write)

                now = utc_now()
                committed = []
                pipe.multi()
                for key, write in zip(keys, writes):
                    item = write.model_copy(deep=True)
                    item.version = write.version + 1
                    item.updated_at = now
                    pipe.set(key, item.model_dump_json())
                    pipe.sadd(self._key("items"), item.id)
                    pipe.sadd(self._key("lot-items", item.lot_number), item.id)
                    committed.append(item)
                pipe.execute()
                return committed
            except redis.WatchError:
                first = writes[0]
                raise ConcurrentModification(first.id, first.version, None) from None
            except redis.RedisError as e:
                raise PersistenceFailure(f"Redis commit failed: {e}") from e
