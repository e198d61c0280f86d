# ticketpay/infrastructure/config.py

import os
from dataclasses import dataclass
from functools import lru_cache

from dotenv import load_dotenv

from ticketpay.domain.state_machine import BookingVariant

load_dotenv()


@dataclass(frozen=True)
class GatewaySettings:
    """Everything the payment gateway and the reconciliation engine need from the environment."""

    mode: str = "khalti"
    base_url: str = "https://dev.khalti.com/api/v2"
    secret_key: str = ""
    timeout_seconds: float = 15.0
    frontend_url: str = "http://localhost:5173"
    order_prefix: str = "ticketpay"

    def website_url(self) -> str:
        return self.frontend_url.rstrip("/")

    def return_url_for(self, variant: BookingVariant, booking_id: str) -> str:
        if BookingVariant(variant) is BookingVariant.EVENT_TICKET:
            return f"{self.website_url()}/events/ticket/payment-success?bookingId={booking_id}"
        return f"{self.website_url()}/dashboard"


def load_gateway_settings() -> GatewaySettings:
    return GatewaySettings(
        mode=os.getenv("PAYMENT_GATEWAY_MODE", "khalti").lower(),
        base_url=os.getenv("KHALTI_BASE_URL", "https://dev.khalti.com/api/v2"),
        secret_key=os.getenv("KHALTI_SECRET_KEY", ""),
        timeout_seconds=float(os.getenv("KHALTI_TIMEOUT_SECONDS", "15")),
        frontend_url=os.getenv("FRONTEND_URL", "http://localhost:5173"),
        order_prefix=os.getenv("KHALTI_ORDER_PREFIX", "ticketpay"),
    )


@lru_cache()
def get_gateway_settings() -> GatewaySettings:
    return load_gateway_settings()
