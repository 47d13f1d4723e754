"""Low-balance notifications fed by ledger events."""

import logging
import threading
from dataclasses import dataclass, field
from decimal import Decimal
from uuid import UUID

import httpx

from meal_ledger.adapters.notification_client import NotificationClient
from meal_ledger.domain.ledger import BalanceChange
from meal_ledger.domain.models import BalanceType
from meal_ledger.services.settings import SettingsService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LowBalanceAlert:
    """A balance dropped below the configured threshold."""

    user_id: UUID
    balance_type: BalanceType
    balance: Decimal
    threshold: Decimal
    transaction_id: UUID

    def to_payload(self) -> dict[str, object]:
        """Serialize the alert for delivery."""
        return {
            "event": "low_balance",
            "user_id": str(self.user_id),
            "balance_type": self.balance_type.value,
            "balance": str(self.balance),
            "threshold": str(self.threshold),
            "transaction_id": str(self.transaction_id),
        }


@dataclass
class LowBalanceMonitor:
    """Queues an alert when a balance crosses below the threshold.

    Registered as a ledger listener; delivery happens later via ``flush``
    and never touches the ledger.
    """

    settings: SettingsService
    client: NotificationClient | None = None
    _outbox: list[LowBalanceAlert] = field(default_factory=list, init=False)
    _guard: threading.Lock = field(default_factory=threading.Lock, init=False)

    def __call__(self, change: BalanceChange) -> None:
        threshold = self.settings.current().low_balance_threshold
        if change.previous_balance >= threshold > change.new_balance:
            with self._guard:
                self._outbox.append(
                    LowBalanceAlert(
                        user_id=change.user_id,
                        balance_type=change.balance_type,
                        balance=change.new_balance,
                        threshold=threshold,
                        transaction_id=change.transaction_id,
                    )
                )

    def pending(self) -> list[LowBalanceAlert]:
        """Return queued alerts without draining them."""
        with self._guard:
            return list(self._outbox)

    def drain(self) -> list[LowBalanceAlert]:
        """Remove and return queued alerts."""
        with self._guard:
            alerts, self._outbox = self._outbox, []
        return alerts

    async def flush(self) -> int:
        """Deliver queued alerts; returns how many were delivered."""
        alerts = self.drain()
        if self.client is None:
            return 0
        delivered = 0
        for alert in alerts:
            try:
                await self.client.send(alert.to_payload())
            except httpx.HTTPError:
                logger.exception(
                    "Low balance notification failed for user %s", alert.user_id
                )
                continue
            delivered += 1
        return delivered
