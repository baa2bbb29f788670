"""Live order board for a vendor, one independently fetched list per bucket."""

import asyncio
from datetime import date, datetime, timezone
from typing import Callable, Optional

from orderflow.errors import ApiError, TransitionError
from orderflow.lifecycle import LIVE_BUCKETS, OrderStatus, check_transition, legal_transitions
from orderflow.log import get_logger
from orderflow.orders_client import OrderStoreClient
from orderflow.schemas import OrderOut

logger = get_logger("poller")


class LiveStatusPoller:
    def __init__(self, orders: OrderStoreClient, interval: float = 10.0, buckets=LIVE_BUCKETS,
                 page_size: int = 100, start_date: Optional[date] = None, end_date: Optional[date] = None,
                 on_error: Optional[Callable[[OrderStatus, Exception], None]] = None):
        self.orders = orders
        self.interval = interval
        self.buckets = tuple(OrderStatus(b) for b in buckets)
        self.page_size = page_size
        self.start_date = start_date
        self.end_date = end_date
        self.on_error = on_error
        self.last_refresh: Optional[datetime] = None

        self._queues = {bucket: [] for bucket in self.buckets}
        self._errors = {bucket: None for bucket in self.buckets}
        self._fetching: dict[OrderStatus, asyncio.Task] = {}
        self._in_flight = set()
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> asyncio.Task:
        """Begin polling on the running loop; refreshes immediately."""
        if not self.running:
            self._task = asyncio.get_running_loop().create_task(self._run())
        return self._task

    async def stop(self):
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _run(self):
        while True:
            try:
                await self.refresh()
            except Exception:
                logger.exception("refresh_failed")
            await asyncio.sleep(self.interval)

    async def refresh(self, force: bool = False) -> dict:
        """
        Fetch every bucket. A bucket whose fetch is still outstanding is
        skipped, unless ``force`` is set: then the outstanding fetch is allowed
        to land first and a new one overwrites it.
        """
        await asyncio.gather(*(self._refresh_bucket(bucket, force) for bucket in self.buckets))
        self.last_refresh = datetime.now(timezone.utc)
        return self.snapshot()

    async def _refresh_bucket(self, bucket: OrderStatus, force: bool = False) -> bool:
        outstanding = self._fetching.get(bucket)
        if outstanding is not None:
            if not force:
                return False
            await asyncio.wait([outstanding])

        task = asyncio.ensure_future(self._fetch_bucket(bucket))
        self._fetching[bucket] = task
        try:
            return await task
        finally:
            if self._fetching.get(bucket) is task:
                del self._fetching[bucket]

    async def _fetch_bucket(self, bucket: OrderStatus) -> bool:
        try:
            orders = await self.orders.list_orders(
                bucket, page_size=self.page_size, start_date=self.start_date, end_date=self.end_date,
            )
        except ApiError as exc:
            self._errors[bucket] = exc
            logger.warning("bucket_fetch_failed", bucket=bucket.value, error=str(exc))
            if self.on_error is not None:
                self.on_error(bucket, exc)
            return False

        # FIFO: the longest-waiting order is actioned first
        self._queues[bucket] = sorted(orders, key=lambda order: (order.created_at, order.id))
        self._errors[bucket] = None
        return True

    def queue(self, bucket) -> list[OrderOut]:
        return list(self._queues[OrderStatus(bucket)])

    def error(self, bucket) -> Optional[Exception]:
        return self._errors[OrderStatus(bucket)]

    def snapshot(self) -> dict:
        return {bucket: list(orders) for bucket, orders in self._queues.items()}

    def find(self, order_id: int) -> Optional[OrderOut]:
        for orders in self._queues.values():
            for order in orders:
                if order.id == order_id:
                    return order
        return None

    def actions_for(self, order: OrderOut) -> tuple:
        return legal_transitions(order.status)

    def is_busy(self, order_id: int) -> bool:
        return order_id in self._in_flight

    async def transition(self, order_id: int, status, reject_reason: Optional[str] = None) -> OrderOut:
        if order_id in self._in_flight:
            raise TransitionError(f"order {order_id} already has an update in flight",
                                  user_message="This order is already being updated")

        target = OrderStatus(status)
        current = self.find(order_id)
        # validated against the displayed status; the store re-checks against its own
        check_transition(current.status if current else target, target, reject_reason)

        self._in_flight.add(order_id)
        try:
            updated = await self.orders.update_status(order_id, target, reject_reason)
        finally:
            self._in_flight.discard(order_id)

        logger.info("order_updated", order_id=order_id, status=target.value)
        await self.refresh(force=True)
        return updated

    async def accept(self, order_id: int) -> OrderOut:
        return await self.transition(order_id, OrderStatus.ACCEPTED)

    async def reject(self, order_id: int, reason: str) -> OrderOut:
        return await self.transition(order_id, OrderStatus.REJECTED, reason)

    async def start_cooking(self, order_id: int) -> OrderOut:
        return await self.transition(order_id, OrderStatus.RUNNING)

    async def mark_ready(self, order_id: int) -> OrderOut:
        return await self.transition(order_id, OrderStatus.READY)
