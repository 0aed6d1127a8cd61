"""
Payment gateway abstraction.

Only the hosted-checkout contract is modelled: create a session for an
amount with metadata, and later retrieve it to learn whether it was paid.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

import structlog

from ednova.config import get_settings
from ednova.errors import ExternalServiceError

logger = structlog.get_logger()


@dataclass(frozen=True)
class CheckoutRequest:
    amount_minor: int
    currency: str
    description: str
    success_url: str
    cancel_url: str
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class CheckoutSession:
    session_id: str
    url: str | None
    paid: bool
    metadata: dict[str, str] = field(default_factory=dict)
    amount_total: int | None = None


class BasePaymentGateway(ABC):
    @abstractmethod
    async def create_checkout(self, request: CheckoutRequest) -> CheckoutSession:
        """Create a hosted checkout session. Raises ExternalServiceError."""
        ...

    @abstractmethod
    async def retrieve_session(self, session_id: str) -> CheckoutSession:
        """Look up a checkout session. Raises ExternalServiceError."""
        ...


class StripeGateway(BasePaymentGateway):
    """Stripe Checkout. The SDK is synchronous, so calls run in a worker thread."""

    def __init__(self, api_key: str) -> None:
        self.api_key = api_key

    async def create_checkout(self, request: CheckoutRequest) -> CheckoutSession:
        import stripe

        try:
            session = await asyncio.to_thread(
                stripe.checkout.Session.create,
                api_key=self.api_key,
                mode="payment",
                payment_method_types=["card"],
                line_items=[
                    {
                        "price_data": {
                            "currency": request.currency,
                            "product_data": {"name": request.description},
                            "unit_amount": request.amount_minor,
                        },
                        "quantity": 1,
                    }
                ],
                success_url=request.success_url,
                cancel_url=request.cancel_url,
                metadata=request.metadata,
            )
        except stripe.StripeError as exc:
            logger.error("checkout_create_failed", provider="stripe", error=str(exc))
            raise ExternalServiceError("Payment provider is unavailable") from exc
        return _to_session(session)

    async def retrieve_session(self, session_id: str) -> CheckoutSession:
        import stripe

        try:
            session = await asyncio.to_thread(stripe.checkout.Session.retrieve, session_id, api_key=self.api_key)
        except stripe.StripeError as exc:
            logger.error("checkout_retrieve_failed", provider="stripe", session_id=session_id, error=str(exc))
            raise ExternalServiceError("Payment provider is unavailable") from exc
        return _to_session(session)


def _to_session(session: object) -> CheckoutSession:
    metadata = getattr(session, "metadata", None) or {}
    return CheckoutSession(
        session_id=session.id,  # type: ignore[attr-defined]
        url=getattr(session, "url", None),
        paid=getattr(session, "payment_status", None) == "paid",
        metadata={str(k): str(v) for k, v in dict(metadata).items()},
        amount_total=getattr(session, "amount_total", None),
    )


_gateway: BasePaymentGateway | None = None


def get_payment_gateway() -> BasePaymentGateway:
    """Get or create the configured gateway (FastAPI dependency)."""
    global _gateway  # noqa: PLW0603
    if _gateway is None:
        settings = get_settings()
        if settings.payment_provider.lower() != "stripe":
            msg = f"Unsupported payment provider: {settings.payment_provider}"
            raise ValueError(msg)
        _gateway = StripeGateway(settings.stripe_secret_key)
    return _gateway
