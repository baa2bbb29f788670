from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Optional

from orderflow.api_client import ApiClient
from orderflow.errors import ApiError
from orderflow.log import get_logger

logger = get_logger("access")

KYC_PATH = "/kyc"
SUBSCRIPTION_PATH = "/subscription"
DUES_PATH = "/dues"

BLOCKING_SUBSCRIPTION_STATES = frozenset({"no_subscription", "expired"})


@dataclass(frozen=True)
class AccessDecision:
    allowed: bool
    redirect_to: Optional[str] = None
    reason: str = ""


class AccountClient:
    """Read-only view of the account checks owned by other services."""

    def __init__(self, api: ApiClient):
        self.api = api

    async def kyc_status(self) -> str:
        return (await self.api.get("/kyc/status/")).get("kyc_status", "")

    async def subscription_state(self) -> str:
        return (await self.api.get("/subscription/status/")).get("subscription_state", "")

    async def due_status(self) -> dict:
        return await self.api.get("/dues/status/")


def over_due_threshold(dues: dict) -> bool:
    flag = dues.get("is_over_threshold")
    if flag is not None:
        return bool(flag)
    balance = Decimal(str(dues.get("due_balance") or 0))
    threshold = dues.get("due_threshold")
    return threshold is not None and balance > Decimal(str(threshold))


class AccessGate:
    """
    KYC approval, then subscription validity, then due balance; the first
    failing step decides and later steps are not queried. The page a step
    redirects to stays reachable so the vendor can fix what blocks them.
    """

    def __init__(self, account: AccountClient, is_superuser: bool = False):
        self.account = account
        self.is_superuser = is_superuser

    async def check(self, path: str = "/") -> AccessDecision:
        if self.is_superuser:
            return AccessDecision(allowed=True)

        try:
            kyc = await self.account.kyc_status()
            if kyc != "approved":
                return self._blocked(path, KYC_PATH, f"KYC is {kyc or 'missing'}")

            subscription = await self.account.subscription_state()
            if subscription in BLOCKING_SUBSCRIPTION_STATES:
                return self._blocked(path, SUBSCRIPTION_PATH, f"subscription is {subscription}")

            if over_due_threshold(await self.account.due_status()):
                return self._blocked(path, DUES_PATH, "due balance is over the threshold")
        except (ApiError, InvalidOperation) as exc:
            logger.warning("access_check_failed", path=path, error=str(exc))
            return AccessDecision(allowed=False, reason=f"Could not verify account: {exc}")

        return AccessDecision(allowed=True)

    @staticmethod
    def _blocked(path: str, target: str, reason: str) -> AccessDecision:
        if path == target:
            return AccessDecision(allowed=True, reason=reason)
        logger.info("access_blocked", path=path, redirect_to=target, reason=reason)
        return AccessDecision(allowed=False, redirect_to=target, reason=reason)
