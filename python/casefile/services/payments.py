"""Payment provider integration (PayPal Orders v2).

Endpoints used:
- POST {base}/v1/oauth2/token               client-credentials token
- POST {base}/v2/checkout/orders            create an order (intent CAPTURE)
- POST {base}/v2/checkout/orders/{id}/capture

The orchestrator only supplies order parameters (see build_order_request);
everything else about the order is the provider's business.

Errors are classified into two kinds the buyer can act on:
- PaymentWindowClosedError: the buyer never approved the order (closed the
  approval window or abandoned it)
- PaymentProviderError: anything else, including unreachable provider
"""

import asyncio
import time
from decimal import Decimal, InvalidOperation
from typing import Any, Protocol

import httpx

from casefile.config import CURRENCY_CODE, PRICE_QUANTUM, Environment, Settings
from casefile.logging import get_logger
from casefile.schemas.cases import CaseOut

logger = get_logger(__name__)

# Issues PayPal reports when capture is attempted on an order the buyer did not approve.
_NOT_APPROVED_ISSUES = {"ORDER_NOT_APPROVED", "PAYER_ACTION_REQUIRED"}

# Refresh the access token this many seconds before PayPal expires it.
TOKEN_EXPIRY_MARGIN_S = 60


class PaymentError(Exception):
    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class PaymentWindowClosedError(PaymentError):
    """Buyer closed the payment window before approving."""


class PaymentProviderError(PaymentError):
    """Provider rejected the call or could not be reached."""


def format_amount(price: Decimal) -> str:
    """Two-decimal string, as the provider expects for money values."""
    return f"{Decimal(price).quantize(PRICE_QUANTUM)}"


def build_order_request(case: CaseOut) -> dict[str, Any]:
    """Order parameters for a single case purchase."""
    return {
        "intent": "CAPTURE",
        "purchase_units": [
            {
                "reference_id": case.id,
                "custom_id": case.id,
                "description": f"Detective Case: {case.title}",
                "amount": {"currency_code": CURRENCY_CODE, "value": format_amount(case.price)},
            }
        ],
        "application_context": {"shipping_preference": "NO_SHIPPING"},
    }


def captured_purchase(capture: dict[str, Any]) -> tuple[str | None, Decimal | None]:
    """Case id and captured amount from a capture body, None where absent.

    The case id is the order's custom_id (set by build_order_request),
    falling back to the purchase unit's reference_id.
    """
    units = capture.get("purchase_units") or []
    unit = units[0] if units and isinstance(units[0], dict) else {}
    captures = (unit.get("payments") or {}).get("captures") or []
    first = captures[0] if captures and isinstance(captures[0], dict) else {}

    case_id = first.get("custom_id") or unit.get("custom_id") or unit.get("reference_id")
    value = (first.get("amount") or unit.get("amount") or {}).get("value")
    try:
        amount = Decimal(str(value)).quantize(PRICE_QUANTUM) if value is not None else None
    except InvalidOperation:
        amount = None
    return case_id, amount


class PaymentProvider(Protocol):
    """What the checkout orchestrator needs from a payment provider."""

    async def create_order(self, order_request: dict[str, Any]) -> dict[str, Any]:
        """Create an order and return the provider's order body (has "id")."""
        ...

    async def capture_order(self, order_id: str) -> dict[str, Any]:
        """Capture an approved order and return the capture body.

        Raises:
            PaymentWindowClosedError: The order was never approved.
            PaymentProviderError: Any other failure.
        """
        ...


class PayPalClient:
    """PayPal REST client over a shared httpx.AsyncClient."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        client_id: str,
        client_secret: str,
        api_base: str = "https://api-m.sandbox.paypal.com",
        timeout_s: float = 30.0,
    ):
        self._client = client
        self._client_id = client_id
        self._client_secret = client_secret
        self._api_base = api_base.rstrip("/")
        self._timeout = httpx.Timeout(timeout_s, connect=10.0)
        self._access_token: str | None = None
        self._token_expires_at = 0.0

    async def create_order(self, order_request: dict[str, Any]) -> dict[str, Any]:
        order = await self._post("/v2/checkout/orders", json=order_request)
        logger.info("payment_order_created", order_id=order.get("id"), status=order.get("status"))
        return order

    async def capture_order(self, order_id: str) -> dict[str, Any]:
        capture = await self._post(f"/v2/checkout/orders/{order_id}/capture", json={})
        status = capture.get("status")
        if status != "COMPLETED":
            raise PaymentProviderError(f"Payment was not completed (status {status})")
        return capture

    async def _token(self) -> str:
        if self._access_token and time.monotonic() < self._token_expires_at:
            return self._access_token

        try:
            response = await self._client.post(
                f"{self._api_base}/v1/oauth2/token",
                data={"grant_type": "client_credentials"},
                auth=(self._client_id, self._client_secret),
                timeout=self._timeout,
            )
        except httpx.HTTPError as e:
            raise PaymentProviderError(f"Payment provider unreachable: {e}") from e

        if response.status_code != 200:
            raise PaymentProviderError(
                "Payment provider authentication failed", status_code=response.status_code
            )

        data = response.json()
        self._access_token = data["access_token"]
        expires_in = float(data.get("expires_in", 0))
        self._token_expires_at = time.monotonic() + max(expires_in - TOKEN_EXPIRY_MARGIN_S, 0)
        return self._access_token

    async def _post(self, path: str, *, json: dict[str, Any]) -> dict[str, Any]:
        token = await self._token()
        try:
            response = await self._client.post(
                f"{self._api_base}{path}",
                json=json,
                headers={"Authorization": f"Bearer {token}", "Prefer": "return=representation"},
                timeout=self._timeout,
            )
        except httpx.HTTPError as e:
            raise PaymentProviderError(f"Payment provider unreachable: {e}") from e

        if response.status_code >= 400:
            raise _classify_failure(response)
        return response.json()


def _classify_failure(response: httpx.Response) -> PaymentError:
    try:
        body = response.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}

    issues = {d.get("issue") for d in body.get("details", []) if isinstance(d, dict)}
    if issues & _NOT_APPROVED_ISSUES:
        return PaymentWindowClosedError(
            "Payment window was closed before the payment was approved",
            status_code=response.status_code,
        )

    message = body.get("message") or body.get("name") or f"HTTP {response.status_code}"
    return PaymentProviderError(f"Payment failed: {message}", status_code=response.status_code)


class FakePaymentProvider:
    """In-memory provider for tests and local runs without PayPal credentials.

    Orders are approved on creation unless listed in unapproved. capture_delay_s
    makes capture slow, for exercising the capture timeout.
    """

    def __init__(self):
        self.orders: dict[str, dict[str, Any]] = {}
        self.captured: list[str] = []
        self.unapproved: set[str] = set()
        self.capture_error: PaymentError | None = None
        self.capture_delay_s = 0.0
        self._counter = 0

    async def create_order(self, order_request: dict[str, Any]) -> dict[str, Any]:
        self._counter += 1
        order_id = f"FAKE-ORDER-{self._counter:04d}"
        order = {"id": order_id, "status": "CREATED", **order_request}
        self.orders[order_id] = order
        return order

    async def capture_order(self, order_id: str) -> dict[str, Any]:
        if self.capture_delay_s:
            await asyncio.sleep(self.capture_delay_s)
        if self.capture_error is not None:
            raise self.capture_error
        if order_id in self.unapproved:
            raise PaymentWindowClosedError(
                "Payment window was closed before the payment was approved"
            )
        if order_id not in self.orders:
            raise PaymentProviderError(f"Payment failed: order {order_id} not found", 404)

        self.captured.append(order_id)
        unit = self.orders[order_id]["purchase_units"][0]
        return {
            "id": order_id,
            "status": "COMPLETED",
            "purchase_units": [
                {
                    "reference_id": unit["reference_id"],
                    "payments": {
                        "captures": [
                            {
                                "id": f"CAPTURE-{order_id}",
                                "status": "COMPLETED",
                                "custom_id": unit.get("custom_id"),
                                "amount": unit["amount"],
                            }
                        ]
                    },
                }
            ],
        }


def get_payment_provider(settings: Settings, client: httpx.AsyncClient) -> PaymentProvider:
    """PayPal when credentials are configured, else the in-memory fake.

    Raises:
        ValueError: In staging or prod without PayPal credentials.
    """
    if settings.paypal_client_id and settings.paypal_client_secret:
        return PayPalClient(
            client,
            client_id=settings.paypal_client_id,
            client_secret=settings.paypal_client_secret,
            api_base=settings.paypal_api_base,
        )
    if settings.casefile_env in (Environment.STAGING, Environment.PROD):
        raise ValueError(
            "PAYPAL_CLIENT_ID and PAYPAL_CLIENT_SECRET are required for "
            f"CASEFILE_ENV={settings.casefile_env.value}"
        )
    logger.warning("payment_provider_fake", reason="PAYPAL_CLIENT_ID not configured")
    return FakePaymentProvider()
