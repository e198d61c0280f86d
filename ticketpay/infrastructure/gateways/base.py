"""Interface the reconciliation engine expects from a payment gateway."""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol


class PaymentGatewayError(RuntimeError):
    """Raised when the gateway cannot be reached or answers with an error."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        *,
        error_body: Any | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.error_body = error_body


@dataclass(frozen=True)
class CustomerInfo:
    name: str = "Customer"
    email: str = ""
    phone: str = ""

    def as_payload(self) -> Dict[str, str]:
        return {"name": self.name, "email": self.email, "phone": self.phone}


@dataclass(frozen=True)
class GatewayInitiation:
    handle: str | None
    payment_url: str | None
    raw: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class GatewayLookup:
    status: str | None
    raw: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_completed(self) -> bool:
        return self.status == "Completed"


class PaymentGateway(Protocol):
    def initiate(
        self,
        *,
        amount: int,
        order_ref: str,
        order_name: str,
        return_url: str,
        customer: CustomerInfo,
    ) -> GatewayInitiation:
        ...

    def lookup(self, handle: str) -> GatewayLookup:
        ...
