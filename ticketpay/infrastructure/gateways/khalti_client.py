"""Minimal Khalti e-payment client: initiate and lookup."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, cast
from uuid import uuid4

import httpx

from ticketpay.infrastructure.config import GatewaySettings
from ticketpay.infrastructure.gateways.base import (
    CustomerInfo,
    GatewayInitiation,
    GatewayLookup,
    PaymentGatewayError,
)

logger = logging.getLogger(__name__)


class KhaltiError(PaymentGatewayError):
    """Raised when the Khalti API cannot be reached or responds with an error."""


class KhaltiClient:
    """Thin client for the Khalti e-payment API. One call per operation, no retries."""

    def __init__(
        self,
        *,
        secret_key: str,
        base_url: str = "https://dev.khalti.com/api/v2",
        website_url: str = "http://localhost:5173",
        timeout: float = 15.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        if not secret_key:
            raise ValueError("Khalti secret key must be provided")

        self._secret_key = secret_key
        self._base_url = base_url.rstrip("/")
        self._website_url = website_url
        self._timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(
        cls,
        settings: GatewaySettings,
        transport: httpx.BaseTransport | None = None,
    ) -> "KhaltiClient":
        return cls(
            secret_key=settings.secret_key,
            base_url=settings.base_url,
            website_url=settings.website_url(),
            timeout=settings.timeout_seconds,
            transport=transport,
        )

    def initiate(
        self,
        *,
        amount: int,
        order_ref: str,
        order_name: str,
        return_url: str,
        customer: CustomerInfo,
    ) -> GatewayInitiation:
        """Start a payment; amount is in paisa."""

        body = {
            "return_url": return_url,
            "website_url": self._website_url,
            "amount": amount,
            "purchase_order_id": order_ref,
            "purchase_order_name": order_name,
            "customer_info": customer.as_payload(),
        }
        data = self.request("/epayment/initiate/", body)
        return GatewayInitiation(
            handle=data.get("pidx"),
            payment_url=data.get("payment_url"),
            raw=data,
        )

    def lookup(self, handle: str) -> GatewayLookup:
        """Fetch the final status of a payment by its pidx."""

        if not handle:
            raise ValueError("handle must be provided")
        data = self.request("/epayment/lookup/", {"pidx": handle})
        return GatewayLookup(status=data.get("status"), raw=data)

    def request(self, path: str, json_body: Dict[str, Any]) -> Dict[str, Any]:
        """POST to the Khalti API and return the parsed JSON payload."""

        url = f"{self._base_url}{path}"
        with httpx.Client(
            timeout=self._timeout,
            transport=self._transport,
            headers={
                "Authorization": f"Key {self._secret_key}",
                "Accept": "application/json",
            },
        ) as client:
            try:
                response = client.post(url, json=json_body)
                response.raise_for_status()
            except httpx.HTTPStatusError as exc:
                status = exc.response.status_code
                error_payload: Any | None = None
                try:
                    error_payload = exc.response.json()
                except json.JSONDecodeError:
                    error_payload = exc.response.text

                message = f"Khalti API responded with status {status}"
                if isinstance(error_payload, dict) and error_payload.get("detail"):
                    message = f"{message}: {error_payload['detail']}"

                logger.error(
                    "Khalti API error %s for POST %s: %s",
                    status,
                    path,
                    exc.response.text[:500],
                )
                raise KhaltiError(
                    message,
                    status_code=status,
                    error_body=error_payload,
                ) from exc
            except httpx.RequestError as exc:
                logger.error("Khalti request failure for POST %s: %s", path, str(exc))
                raise KhaltiError("Failed to reach Khalti API") from exc

        try:
            payload = response.json()
        except json.JSONDecodeError as exc:
            logger.error("Invalid JSON from Khalti for POST %s: %s", path, response.text[:500])
            raise KhaltiError("Received malformed JSON from Khalti") from exc

        if not isinstance(payload, dict):
            raise KhaltiError("Received unexpected payload from Khalti", error_body=payload)
        return cast(Dict[str, Any], payload)


class FakeKhaltiClient:
    """In-memory stand-in for Khalti used by non-production flows and tests."""

    def __init__(self, default_status: str = "Completed") -> None:
        self.default_status = default_status
        self.statuses: Dict[str, str] = {}
        self.initiate_calls: list[Dict[str, Any]] = []
        self.lookup_calls: list[str] = []
        self.unreachable = False
        self.drop_payment_url = False
        self.drop_handle = False
        self._logger = logging.getLogger(self.__class__.__name__)

    def set_status(self, handle: str, status: str) -> None:
        self.statuses[handle] = status

    def initiate(
        self,
        *,
        amount: int,
        order_ref: str,
        order_name: str,
        return_url: str,
        customer: CustomerInfo,
    ) -> GatewayInitiation:
        self.initiate_calls.append(
            {
                "amount": amount,
                "order_ref": order_ref,
                "order_name": order_name,
                "return_url": return_url,
                "customer": customer,
            }
        )
        if self.unreachable:
            raise KhaltiError("Failed to reach Khalti API")

        handle = f"fake-pidx-{uuid4().hex}"
        payment_url = None if self.drop_payment_url else f"https://pay.khalti.test/?pidx={handle}"
        if self.drop_handle:
            handle = None
        self._logger.debug("Fake payment initiated. pidx=%s order_ref=%s", handle, order_ref)
        return GatewayInitiation(
            handle=handle,
            payment_url=payment_url,
            raw={"pidx": handle, "payment_url": payment_url},
        )

    def lookup(self, handle: str) -> GatewayLookup:
        self.lookup_calls.append(handle)
        if self.unreachable:
            raise KhaltiError("Failed to reach Khalti API")

        status = self.statuses.get(handle, self.default_status)
        raw: Dict[str, Any] = {"pidx": handle, "status": status}
        if status != "Completed":
            raw["message"] = f"Payment {status.lower()}"
        return GatewayLookup(status=status, raw=raw)
