from datetime import date
from typing import Optional

from pydantic import ValidationError as SchemaError

from orderflow.api_client import ApiClient
from orderflow.errors import ApiError, TransitionError
from orderflow.lifecycle import OrderStatus
from orderflow.schemas import OrderListResponse, OrderOut


def _parse_order(data) -> OrderOut:
    try:
        return OrderOut.model_validate(data)
    except SchemaError as exc:
        raise ApiError(f"Unexpected order response: {exc}") from exc


class OrderStoreClient:
    def __init__(self, api: ApiClient):
        self.api = api

    async def list_orders(self, status, page_size: int = 100, page: int = 1,
                          start_date: Optional[date] = None, end_date: Optional[date] = None) -> list[OrderOut]:
        params = {"status": OrderStatus(status).value, "page_size": page_size, "page": page}
        if start_date:
            params["start_date"] = start_date.isoformat()
        if end_date:
            params["end_date"] = end_date.isoformat()

        data = await self.api.get("/orders/", params=params)
        try:
            return OrderListResponse.model_validate(data).data
        except SchemaError as exc:
            raise ApiError(f"Unexpected order list response: {exc}") from exc

    async def get_order(self, order_id: int) -> OrderOut:
        return _parse_order(await self.api.get(f"/orders/{order_id}"))

    async def update_status(self, order_id: int, status, reject_reason: Optional[str] = None) -> OrderOut:
        form = {"status": OrderStatus(status).value}
        if reject_reason:
            form["reject_reason"] = reject_reason

        try:
            data = await self.api.post(f"/orders/{order_id}/edit", data=form)
        except ApiError as exc:
            raise TransitionError(str(exc), user_message=exc.user_message) from exc
        return _parse_order(data)

    async def register_push_token(self, token: str) -> dict:
        return await self.api.post("/auth/user/fcm-token/", json={"token": token})
