from __future__ import annotations

import logging
from dataclasses import dataclass
from time import monotonic
from typing import Any

import stripe

from revshare.core.config import settings
from revshare.core.errors import TransferError
from revshare.core.metrics import record_transfer_latency


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransferReceipt:
    external_id: str


class TransferClient:
    """Issues one payout to one connected account.

    Implementations raise :class:`TransferError` on any failure, including
    timeouts. The idempotency key is the local Transfer row id.
    """

    def issue_transfer(
        self,
        *,
        destination_account: str,
        amount: int,
        currency: str,
        idempotency_key: str,
        metadata: dict[str, Any],
    ) -> TransferReceipt:
        raise NotImplementedError


class StripeTransferClient(TransferClient):
    def __init__(self, api_key: str | None = None, timeout_seconds: int | None = None) -> None:
        self.api_key = api_key or settings.STRIPE_SECRET_KEY
        self.timeout_seconds = timeout_seconds or settings.TRANSFER_TIMEOUT_SECONDS

    def _configure(self) -> None:
        if not self.api_key:
            raise TransferError("Stripe is not configured", retryable=False)
        stripe.api_key = self.api_key
        # A timeout is a definite failure for this run.
        stripe.max_network_retries = 0
        stripe.default_http_client = stripe.RequestsClient(timeout=self.timeout_seconds)

    def issue_transfer(
        self,
        *,
        destination_account: str,
        amount: int,
        currency: str,
        idempotency_key: str,
        metadata: dict[str, Any],
    ) -> TransferReceipt:
        self._configure()
        start = monotonic()
        try:
            transfer = stripe.Transfer.create(
                amount=amount,
                currency=currency.lower(),
                destination=destination_account,
                metadata={key: str(value) for key, value in metadata.items()},
                idempotency_key=idempotency_key,
            )
        except stripe.StripeError as exc:
            message = getattr(exc, "user_message", None) or str(exc) or exc.__class__.__name__
            raise TransferError(message) from exc
        finally:
            record_transfer_latency(monotonic() - start)
        return TransferReceipt(external_id=transfer.id)


def get_transfer_client() -> TransferClient:
    return StripeTransferClient()
