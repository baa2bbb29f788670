"""Push payloads for order events and their HTTP delivery."""

import httpx

from orderflow.lifecycle import OrderStatus
from orderflow.log import get_logger

logger = get_logger("push")

LIVE_ORDERS_URL = "/orders/live"

CUSTOMER_MESSAGES = {
    OrderStatus.ACCEPTED: "Your order has been accepted",
    OrderStatus.RUNNING: "Your order is being prepared",
    OrderStatus.READY: "Your order is ready",
    OrderStatus.COMPLETED: "Thank you! Your order is complete",
}


def new_order_payload(order) -> dict:
    items = len(order.items)
    body = f"{order.customer_name} · {items} item{'s' if items != 1 else ''} · {order.total_amount}"
    if order.table_no:
        body += f" · Table {order.table_no}"
    return {
        "notification": {"title": f"New order #{order.id}", "body": body},
        "data": {"order_id": str(order.id), "tag": f"order-{order.id}", "url": LIVE_ORDERS_URL},
    }


def status_change_payload(order) -> dict:
    status = OrderStatus(order.status)
    if status is OrderStatus.REJECTED:
        body = f"Your order was rejected: {order.reject_reason}"
    else:
        body = CUSTOMER_MESSAGES.get(status, f"Your order is {status.value}")
    return {
        "notification": {"title": f"Order #{order.id}", "body": body},
        "data": {"order_id": str(order.id), "status": status.value},
    }


class PushNotifier:
    """Send push payloads to device tokens through the messaging HTTP API."""

    def __init__(self, api_url: str, server_key: str | None, timeout: float = 10):
        self.api_url = api_url
        self.server_key = server_key
        self.timeout = timeout
        self.enabled = bool(api_url and server_key)

    async def send(self, token: str, payload: dict) -> bool:
        if not self.enabled or not token:
            return False

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(
                    self.api_url,
                    headers={"Authorization": f"key={self.server_key}"},
                    json={"to": token, **payload},
                )
        except httpx.HTTPError as exc:
            logger.warning("push_failed", error=str(exc))
            return False

        if resp.status_code != 200:
            logger.warning("push_rejected", status_code=resp.status_code)
            return False
        return True

    async def notify_new_order(self, order, tokens) -> int:
        payload = new_order_payload(order)
        sent = 0
        for token in tokens:
            if await self.send(token, payload):
                sent += 1
        logger.info("new_order_pushed", order_id=order.id, devices=sent)
        return sent

    async def notify_status_change(self, order) -> bool:
        if not order.customer_push_token:
            return False
        return await self.send(order.customer_push_token, status_change_payload(order))
