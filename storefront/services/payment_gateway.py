"""
Payment gateway

Workflows depend on the PaymentGateway interface, never on the Stripe SDK or
on configuration. get_payment_gateway() returns the Stripe implementation
when a secret key is configured and DisabledPaymentGateway otherwise.

Holds are created with capture_method="manual": authorize places the hold,
capture collects the funds, cancel releases the hold.

Every processor call is bounded by PAYMENT_TIMEOUT_SECONDS. A timeout or a
connection failure means the outcome is unknown and surfaces as
PaymentStatusUnknownError; callers must not change local state in that case.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from functools import partial
from typing import Any, Dict, Optional

import stripe

from storefront.core.config import settings
from storefront.core.exceptions import (
    ExternalPaymentError,
    PaymentGatewayDisabledError,
    PaymentStatusUnknownError,
)
from storefront.core.utils import dollars_to_cents

logger = logging.getLogger(__name__)


@dataclass
class PaymentIntentResult:
    """Processor-neutral view of a payment intent. Amount is in cents."""
    reference: str
    status: str
    amount: int
    currency: str
    client_secret: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


class PaymentGateway(ABC):
    """Authorize / capture / release interface used by the order workflow."""

    name: str = "base"
    enabled: bool = True

    @abstractmethod
    async def authorize(
        self,
        amount: Decimal,
        currency: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
    ) -> PaymentIntentResult:
        """Place a hold for amount (major units) without capturing it."""
        pass

    @abstractmethod
    async def capture(self, reference: str) -> PaymentIntentResult:
        pass

    @abstractmethod
    async def cancel(self, reference: str) -> PaymentIntentResult:
        """Release an uncaptured hold."""
        pass

    @abstractmethod
    async def retrieve(self, reference: str) -> PaymentIntentResult:
        pass


class StripePaymentGateway(PaymentGateway):
    name = "stripe"

    def __init__(
        self,
        api_key: str,
        timeout: float = 20.0,
        default_currency: str = "usd",
    ):
        self.api_key = api_key
        self.timeout = timeout
        self.default_currency = default_currency

    async def _call(self, operation: str, func, *args, **kwargs):
        """Run a blocking SDK call in a worker thread with a deadline."""
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(partial(func, *args, api_key=self.api_key, **kwargs)),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            logger.error(f"Stripe {operation} timed out after {self.timeout}s")
            raise PaymentStatusUnknownError(
                "The payment processor did not respond in time. "
                "The payment state is unknown; check the processor before retrying.",
                details={"operation": operation},
            )
        except stripe.APIConnectionError as e:
            logger.error(f"Stripe {operation} connection failure: {e.user_message or type(e).__name__}")
            raise PaymentStatusUnknownError(
                "Could not reach the payment processor. The payment state is unknown.",
                details={"operation": operation},
            ) from e
        except stripe.StripeError as e:
            logger.error(
                f"Stripe {operation} failed: code={e.code} message={e.user_message}",
                exc_info=True,
            )
            raise ExternalPaymentError(
                e.user_message or f"Payment processor could not {operation} the payment",
                details={"operation": operation, "processor_code": e.code},
            ) from e

    @staticmethod
    def _to_result(intent) -> PaymentIntentResult:
        return PaymentIntentResult(
            reference=intent.id,
            status=intent.status,
            amount=intent.amount,
            currency=intent.currency,
            client_secret=getattr(intent, "client_secret", None),
            metadata=dict(getattr(intent, "metadata", None) or {}),
        )

    async def authorize(self, amount, currency=None, metadata=None):
        intent = await self._call(
            "authorize",
            stripe.PaymentIntent.create,
            amount=dollars_to_cents(amount),
            currency=(currency or self.default_currency).lower(),
            capture_method="manual",
            metadata=metadata or {},
            automatic_payment_methods={"enabled": True},
        )
        logger.info(f"Payment hold created: {intent.id} ({intent.amount} {intent.currency})")
        return self._to_result(intent)

    async def capture(self, reference):
        intent = await self._call("capture", stripe.PaymentIntent.capture, reference)
        logger.info(f"Payment captured: {reference}")
        return self._to_result(intent)

    async def cancel(self, reference):
        intent = await self._call("cancel", stripe.PaymentIntent.cancel, reference)
        logger.info(f"Payment hold released: {reference}")
        return self._to_result(intent)

    async def retrieve(self, reference):
        intent = await self._call("retrieve", stripe.PaymentIntent.retrieve, reference)
        return self._to_result(intent)


class DisabledPaymentGateway(PaymentGateway):
    """Stand-in used when no processor key is configured."""

    name = "disabled"
    enabled = False

    async def authorize(self, amount, currency=None, metadata=None):
        raise PaymentGatewayDisabledError()

    async def capture(self, reference):
        raise PaymentGatewayDisabledError()

    async def cancel(self, reference):
        raise PaymentGatewayDisabledError()

    async def retrieve(self, reference):
        raise PaymentGatewayDisabledError()


def get_payment_gateway() -> PaymentGateway:
    """FastAPI dependency selecting the gateway from configuration."""
    if not settings.STRIPE_SECRET_KEY:
        return DisabledPaymentGateway()
    return StripePaymentGateway(
        api_key=settings.STRIPE_SECRET_KEY,
        timeout=settings.PAYMENT_TIMEOUT_SECONDS,
        default_currency=settings.STRIPE_CURRENCY,
    )
