from datetime import date
from typing import Any, Callable, Optional

import httpx

from orderflow.access import AccessGate, AccountClient
from orderflow.api_client import ApiClient
from orderflow.config import Settings
from orderflow.errors import AccessDenied
from orderflow.orchestrator import OrderCreationOrchestrator
from orderflow.orders_client import OrderStoreClient
from orderflow.payments_client import PaymentGatewayClient, PollResult
from orderflow.poller import LiveStatusPoller

LIVE_ORDERS_PATH = "/orders/live"


class Dashboard:
    """
    Owns one API client and the components built on it.

    The live board exists only between :meth:`open_live_orders` and
    :meth:`close_live_orders` (or :meth:`aclose`), so no timer outlives the
    view that started it.
    """

    def __init__(self, settings: Settings, token: Optional[str] = None, is_superuser: bool = False,
                 client: Optional[httpx.AsyncClient] = None):
        self.settings = settings
        self.api = ApiClient(settings.api_base_url, token=token, client=client)
        self.orders = OrderStoreClient(self.api)
        self.payments = PaymentGatewayClient(self.api)
        self.gate = AccessGate(AccountClient(self.api), is_superuser=is_superuser)
        self.poller: Optional[LiveStatusPoller] = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()

    async def open_live_orders(self, start_date: Optional[date] = None, end_date: Optional[date] = None,
                               on_error=None) -> LiveStatusPoller:
        decision = await self.gate.check(LIVE_ORDERS_PATH)
        if not decision.allowed:
            raise AccessDenied(decision)

        await self.close_live_orders()
        self.poller = LiveStatusPoller(
            self.orders,
            interval=self.settings.live_orders_interval,
            start_date=start_date,
            end_date=end_date,
            on_error=on_error,
        )
        self.poller.start()
        return self.poller

    async def close_live_orders(self):
        if self.poller is not None:
            await self.poller.stop()
            self.poller = None

    def order_form(self, redirect: Callable[[str], Any]) -> OrderCreationOrchestrator:
        return OrderCreationOrchestrator(self.payments, redirect)

    async def watch_payment(self, gateway_txn_id: str, on_update=None) -> PollResult:
        return await self.payments.poll_until_settled(
            gateway_txn_id,
            max_attempts=self.settings.payment_poll_attempts,
            interval=self.settings.payment_poll_interval,
            on_update=on_update,
        )

    async def register_device(self, token: str) -> dict:
        return await self.orders.register_push_token(token)

    async def aclose(self):
        await self.close_live_orders()
        await self.api.aclose()
