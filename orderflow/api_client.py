import httpx

from orderflow.errors import ApiError


def _error_message(data: dict, status_code: int) -> str:
    detail = data.get("detail") or data.get("error") or data.get("message")
    if isinstance(detail, list):
        # request validation errors come back as a list of {loc, msg}
        detail = "; ".join(str(item.get("msg", item)) if isinstance(item, dict) else str(item) for item in detail)
    return str(detail) if detail else f"Request failed with status {status_code}"


class ApiClient:
    """Thin async wrapper over the order service's REST API."""

    def __init__(self, base_url: str, token: str | None = None, timeout: float = 10,
                 client: httpx.AsyncClient | None = None):
        self.token = token
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()

    async def aclose(self):
        await self._client.aclose()

    async def request(self, method: str, path: str, **kwargs) -> dict:
        headers = kwargs.pop("headers", {})
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"

        try:
            resp = await self._client.request(method, path, headers=headers, **kwargs)
        except httpx.HTTPError as exc:
            raise ApiError(f"Network error: {exc}") from exc

        data = {}
        if "application/json" in resp.headers.get("content-type", ""):
            try:
                data = resp.json()
            except ValueError:
                data = {}

        if resp.is_error:
            raise ApiError(_error_message(data if isinstance(data, dict) else {}, resp.status_code), resp.status_code)
        return data

    async def get(self, path: str, **kwargs) -> dict:
        return await self.request("GET", path, **kwargs)

    async def post(self, path: str, **kwargs) -> dict:
        return await self.request("POST", path, **kwargs)
