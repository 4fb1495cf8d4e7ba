"""
Stripe API client with timeouts and retry logic.

The Stripe SDK is synchronous. Each call runs in a worker thread and is
bounded by ``asyncio.wait_for``, so a hung connection surfaces as a timeout
instead of stalling the request. Transient failures (connection errors, rate
limits, 5xx responses, timeouts) are retried with exponential backoff; every
other Stripe error is raised immediately.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Callable, Optional
from uuid import UUID

import stripe

from storefront.core.config import get_settings
from storefront.core.exceptions import PaymentGatewayError
from storefront.core.logging import get_logger

logger = get_logger(__name__)


class StripeClientError(PaymentGatewayError):
    """Base exception for Stripe client errors."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        stripe_error: Optional[Exception] = None,
        **context: Any,
    ):
        super().__init__(message, stripe_code=code, **context)
        self.stripe_code = code
        self.stripe_error = stripe_error


class StripeAuthenticationError(StripeClientError):
    """The configured API key was rejected."""


class StripeRateLimitError(StripeClientError):
    """Stripe kept rate limiting after all retries."""


class StripeConnectionError(StripeClientError):
    """Stripe could not be reached or did not answer in time."""


class StripeIntentNotFoundError(StripeClientError):
    """The payment intent id is unknown to the account in use."""


@dataclass(frozen=True)
class IntentHandle:
    """The fields of a payment intent the service relies on."""

    id: str
    client_secret: Optional[str]
    status: str
    amount: int
    currency: str

    @classmethod
    def from_stripe(cls, intent: Any) -> "IntentHandle":
        return cls(
            id=intent.id,
            client_secret=getattr(intent, "client_secret", None),
            status=intent.status,
            amount=int(getattr(intent, "amount", 0) or 0),
            currency=getattr(intent, "currency", None) or "",
        )


class StripeClient:
    """
    Stripe payment intent operations.

    Attributes:
        api_key: Secret key passed on every request
        timeout: Upper bound in seconds for one API call
        max_retries: Retries for transient failures
        initial_backoff: First retry delay in seconds
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        initial_backoff: Optional[float] = None,
        max_backoff: float = 8.0,
        backoff_multiplier: float = 2.0,
    ):
        settings = get_settings()
        self.api_key = api_key or settings.stripe_secret_key
        self.timeout = timeout if timeout is not None else settings.stripe_timeout_seconds
        self.max_retries = (
            max_retries if max_retries is not None else settings.stripe_max_retries
        )
        self.initial_backoff = (
            initial_backoff
            if initial_backoff is not None
            else settings.stripe_retry_backoff_seconds
        )
        self.max_backoff = max_backoff
        self.backoff_multiplier = backoff_multiplier

    def _calculate_backoff(self, attempt: int) -> float:
        return min(
            self.initial_backoff * (self.backoff_multiplier**attempt),
            self.max_backoff,
        )

    async def _call(self, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        return await asyncio.wait_for(
            asyncio.to_thread(func, *args, api_key=self.api_key, **kwargs),
            timeout=self.timeout,
        )

    async def _execute_with_retry(
        self,
        operation: str,
        func: Callable[..., Any],
        *args: Any,
        **kwargs: Any,
    ) -> Any:
        """
        Run a Stripe SDK call with timeout and backoff.

        Raises:
            StripeClientError: Subclass describing the final failure
        """
        last_error: Optional[Exception] = None

        for attempt in range(self.max_retries + 1):
            try:
                result = await self._call(func, *args, **kwargs)
                if attempt > 0:
                    logger.info(
                        "Stripe operation succeeded after retry",
                        operation=operation,
                        attempt=attempt,
                    )
                return result

            except stripe.AuthenticationError as e:
                logger.error(
                    "payment_gateway_error",
                    operation=operation,
                    reason="authentication",
                    error=str(e),
                )
                raise StripeAuthenticationError(
                    "Stripe rejected the API key",
                    code=e.code,
                    stripe_error=e,
                    operation=operation,
                ) from e

            except stripe.InvalidRequestError as e:
                if e.code == "resource_missing":
                    raise StripeIntentNotFoundError(
                        "Payment intent not found",
                        code=e.code,
                        stripe_error=e,
                        operation=operation,
                    ) from e
                logger.error(
                    "payment_gateway_error",
                    operation=operation,
                    reason="invalid_request",
                    error=str(e),
                    code=e.code,
                    param=e.param,
                )
                raise StripeClientError(
                    f"Invalid Stripe request: {e.user_message or e}",
                    code=e.code,
                    stripe_error=e,
                    operation=operation,
                ) from e

            except (
                stripe.APIConnectionError,
                stripe.RateLimitError,
                stripe.APIError,
                asyncio.TimeoutError,
            ) as e:
                last_error = e
                if attempt >= self.max_retries:
                    break
                backoff = self._calculate_backoff(attempt)
                logger.warning(
                    "Transient Stripe failure, retrying",
                    operation=operation,
                    attempt=attempt,
                    backoff_seconds=backoff,
                    error_type=type(e).__name__,
                )
                await asyncio.sleep(backoff)

            except stripe.StripeError as e:
                logger.error(
                    "payment_gateway_error",
                    operation=operation,
                    reason="stripe_error",
                    error=str(e),
                    error_type=type(e).__name__,
                )
                raise StripeClientError(
                    f"Stripe error: {e.user_message or e}",
                    code=getattr(e, "code", None),
                    stripe_error=e,
                    operation=operation,
                ) from e

        logger.error(
            "payment_gateway_error",
            operation=operation,
            reason="retries_exhausted",
            max_retries=self.max_retries,
            last_error_type=type(last_error).__name__ if last_error else None,
        )
        if isinstance(last_error, stripe.RateLimitError):
            raise StripeRateLimitError(
                "Stripe rate limit exceeded",
                code=last_error.code,
                stripe_error=last_error,
                operation=operation,
            )
        raise StripeConnectionError(
            "Stripe is unreachable",
            stripe_error=last_error,
            operation=operation,
        )

    async def create_payment_intent(
        self,
        amount: int,
        currency: str,
        order_id: Optional[UUID] = None,
        idempotency_key: Optional[str] = None,
        metadata: Optional[dict[str, str]] = None,
    ) -> IntentHandle:
        """
        Create a payment intent.

        Args:
            amount: Amount in the currency's minor unit
            currency: Three-letter ISO currency code
            order_id: Order recorded in the intent metadata
            idempotency_key: Key making retries return the same intent
            metadata: Extra metadata

        Returns:
            IntentHandle for the new intent
        """
        params: dict[str, Any] = {
            "amount": amount,
            "currency": currency.lower(),
            "automatic_payment_methods": {"enabled": True},
        }

        intent_metadata = dict(metadata or {})
        if order_id:
            intent_metadata["order_id"] = str(order_id)
        if intent_metadata:
            params["metadata"] = intent_metadata
        if idempotency_key:
            params["idempotency_key"] = idempotency_key

        intent = await self._execute_with_retry(
            "create_payment_intent",
            stripe.PaymentIntent.create,
            **params,
        )
        handle = IntentHandle.from_stripe(intent)

        logger.info(
            "Payment intent created",
            payment_intent_id=handle.id,
            order_id=str(order_id) if order_id else None,
            amount=amount,
            currency=currency,
        )
        return handle

    async def retrieve_payment_intent(self, payment_intent_id: str) -> IntentHandle:
        """
        Fetch the current state of a payment intent.

        Raises:
            StripeIntentNotFoundError: Stripe does not know the id
            StripeClientError: Any other failure
        """
        intent = await self._execute_with_retry(
            "retrieve_payment_intent",
            stripe.PaymentIntent.retrieve,
            payment_intent_id,
        )
        handle = IntentHandle.from_stripe(intent)

        logger.debug(
            "Payment intent retrieved",
            payment_intent_id=handle.id,
            status=handle.status,
        )
        return handle


def get_stripe_client() -> StripeClient:
    return StripeClient()
