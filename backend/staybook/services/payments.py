"""
Staybook - Payment Gateway

Narrow contract the booking engine uses to charge guests, refund them and
pay hosts out. ``StripeGateway`` is the production implementation.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional
from uuid import UUID

import stripe
from fastapi.concurrency import run_in_threadpool

from staybook.core.config import Settings, get_settings
from staybook.core.errors import ExternalServiceError, ValidationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PaymentIntent:
    payment_intent_id: str
    client_secret: str


@dataclass(frozen=True)
class WebhookEvent:
    """Verified provider event reduced to what the engine acts on."""

    event_id: str
    type: str
    payment_intent_id: Optional[str] = None
    booking_id: Optional[str] = None


class PaymentGateway(ABC):
    """Payment provider seen from the booking engine. Amounts are minor units."""

    @abstractmethod
    async def create_payment_intent(
        self,
        amount: int,
        currency: str,
        metadata: dict[str, str],
    ) -> PaymentIntent:
        pass

    @abstractmethod
    async def confirm_payment(self, payment_intent_id: str) -> bool:
        """Whether the provider reports the intent as paid."""
        pass

    @abstractmethod
    async def refund_payment(
        self,
        payment_intent_id: str,
        amount: Optional[int] = None,
        reason: Optional[str] = None,
    ) -> str:
        """Refund ``amount`` (everything when None); returns the refund id."""
        pass

    @abstractmethod
    async def create_transfer(
        self,
        destination_account: str,
        amount: int,
        currency: str,
        booking_id: UUID,
    ) -> str:
        """Pay a host out; returns the transfer id."""
        pass

    @abstractmethod
    def parse_webhook(self, payload: bytes, signature: Optional[str]) -> WebhookEvent:
        """Verify and decode a webhook delivery. Raises ValidationError when invalid."""
        pass


class StripeGateway(PaymentGateway):
    """Stripe implementation. SDK calls are blocking and run in the thread pool."""

    SERVICE = "stripe"

    def __init__(self, settings: Settings):
        self.secret_key = settings.stripe_secret_key
        self.webhook_secret = settings.stripe_webhook_secret

    def _api_key(self) -> str:
        if not self.secret_key:
            raise ExternalServiceError(self.SERVICE, "Payments are not configured")
        return self.secret_key

    async def _call(self, operation: str, func, **params):
        api_key = self._api_key()
        try:
            return await run_in_threadpool(func, api_key=api_key, **params)
        except stripe.StripeError as e:
            logger.error(f"[PAYMENTS] Stripe {operation} failed: {e.user_message or e}")
            raise ExternalServiceError(self.SERVICE, f"Payment provider error during {operation}")

    async def create_payment_intent(
        self,
        amount: int,
        currency: str,
        metadata: dict[str, str],
    ) -> PaymentIntent:
        intent = await self._call(
            "payment intent creation",
            stripe.PaymentIntent.create,
            amount=amount,
            currency=currency.lower(),
            metadata=metadata,
            automatic_payment_methods={"enabled": True},
        )
        logger.info(f"[PAYMENTS] Payment intent {intent.id} created for {amount} {currency}")
        return PaymentIntent(payment_intent_id=intent.id, client_secret=intent.client_secret)

    async def confirm_payment(self, payment_intent_id: str) -> bool:
        intent = await self._call(
            "payment confirmation",
            stripe.PaymentIntent.retrieve,
            id=payment_intent_id,
        )
        return intent.status == "succeeded"

    async def refund_payment(
        self,
        payment_intent_id: str,
        amount: Optional[int] = None,
        reason: Optional[str] = None,
    ) -> str:
        params = {
            "payment_intent": payment_intent_id,
            "reason": "requested_by_customer",
        }
        if amount is not None:
            params["amount"] = amount
        if reason:
            params["metadata"] = {"reason": reason[:500]}

        refund = await self._call("refund", stripe.Refund.create, **params)
        logger.info(f"[PAYMENTS] Refund {refund.id} issued for {payment_intent_id}")
        return refund.id

    async def create_transfer(
        self,
        destination_account: str,
        amount: int,
        currency: str,
        booking_id: UUID,
    ) -> str:
        transfer = await self._call(
            "transfer",
            stripe.Transfer.create,
            amount=amount,
            currency=currency.lower(),
            destination=destination_account,
            transfer_group=str(booking_id),
            metadata={"bookingId": str(booking_id)},
        )
        logger.info(f"[PAYMENTS] Transfer {transfer.id} sent for booking {booking_id}")
        return transfer.id

    def parse_webhook(self, payload: bytes, signature: Optional[str]) -> WebhookEvent:
        if not self.webhook_secret:
            raise ExternalServiceError(self.SERVICE, "Webhooks are not configured")
        if not signature:
            raise ValidationError("Missing webhook signature")

        try:
            event = stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except ValueError:
            raise ValidationError("Invalid webhook payload")
        except stripe.SignatureVerificationError:
            raise ValidationError("Invalid webhook signature")

        obj = event.data.object
        payment_intent_id = None
        booking_id = None
        if event.type.startswith("payment_intent."):
            payment_intent_id = getattr(obj, "id", None)
            metadata = getattr(obj, "metadata", None)
            if metadata is not None:
                booking_id = getattr(metadata, "bookingId", None)

        return WebhookEvent(
            event_id=event.id,
            type=event.type,
            payment_intent_id=payment_intent_id,
            booking_id=booking_id,
        )


def get_payment_gateway() -> PaymentGateway:
    """FastAPI dependency for the configured gateway."""
    return StripeGateway(get_settings())
