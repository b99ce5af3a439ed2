"""One-shot price alert evaluation over an ingested snapshot batch."""

import math
from collections.abc import Callable, Iterable, Sequence
from datetime import UTC, datetime

from src.database.store import TimeSeriesStore
from src.models.market_data import AssetSnapshot
from src.models.price_alert import AlertKind, AlertRule
from src.services.errors import StoreUnavailable
from src.utils.event_store import ALERT_TRIGGERED, EventStore
from src.utils.logger import StructuredLogger
from src.utils.trace_context import get_current_trace


class MalformedRule(ValueError):
    """An alert rule that cannot be evaluated."""


def matches(rule: AlertRule, snapshot: AssetSnapshot) -> bool:
    """
    Check whether a snapshot satisfies a rule's trigger condition.

    Equality triggers: price_above uses >=, price_below uses <=, and
    percentage_change compares |24h change| >= target.

    Raises:
        MalformedRule: If the rule kind is unknown, the target is not a finite
            number, or the snapshot lacks the 24h change a percentage rule needs
    """
    try:
        target = float(rule.target_value)
    except (TypeError, ValueError) as e:
        raise MalformedRule(f"Non-numeric target value: {rule.target_value!r}") from e
    if not math.isfinite(target):
        raise MalformedRule(f"Non-finite target value: {rule.target_value!r}")

    try:
        kind = AlertKind(rule.kind)
    except ValueError as e:
        raise MalformedRule(f"Unknown alert kind: {rule.kind!r}") from e

    if kind is AlertKind.PRICE_ABOVE:
        return snapshot.current_price >= target
    if kind is AlertKind.PRICE_BELOW:
        return snapshot.current_price <= target

    change = snapshot.price_change_percentage_24h
    if change is None or not math.isfinite(change):
        raise MalformedRule(f"No 24h change available for {snapshot.id}")
    return abs(change) >= target


class AlertEvaluator:
    """
    Evaluates active alert rules against a snapshot batch.

    The only side effect is the store's false-to-true trigger transition. A
    rule already triggered is skipped; rules are never reset.
    """

    def __init__(
        self,
        store: TimeSeriesStore,
        event_store: EventStore | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.store = store
        self.event_store = event_store
        self._clock = clock or (lambda: datetime.now(UTC))
        self.logger = StructuredLogger("AlertEvaluator")

    def evaluate(
        self, snapshot_batch: Sequence[AssetSnapshot], active_rules: Iterable[AlertRule]
    ) -> list[str]:
        """
        Trigger every untriggered rule whose condition the batch satisfies.

        Args:
            snapshot_batch: Snapshots from one ingestion cycle
            active_rules: Candidate rules; triggered ones are ignored

        Returns:
            IDs of rules newly triggered by this call
        """
        by_asset = {snapshot.id: snapshot for snapshot in snapshot_batch}
        now = self._clock()
        triggered: list[str] = []

        for rule in active_rules:
            if rule.is_triggered:
                continue
            snapshot = by_asset.get(rule.asset_id)
            if snapshot is None:
                continue

            try:
                if not matches(rule, snapshot):
                    continue
            except MalformedRule as e:
                self.logger.warning(
                    "Skipping malformed alert rule",
                    context={"rule_id": rule.id, "asset_id": rule.asset_id, "reason": str(e)},
                )
                continue

            try:
                transitioned = self.store.mark_triggered(rule.id, now)
            except StoreUnavailable as e:
                self.logger.error(
                    "Failed to mark alert triggered",
                    context={"rule_id": rule.id, "asset_id": rule.asset_id},
                    exception=e,
                )
                continue

            if not transitioned:
                # Triggered concurrently or deleted since the rule list was read
                continue

            triggered.append(rule.id)
            self.logger.info(
                "Price alert triggered",
                context={
                    "rule_id": rule.id,
                    "owner_id": rule.owner_id,
                    "asset_id": rule.asset_id,
                    "kind": rule.kind,
                    "target_value": rule.target_value,
                    "current_price": snapshot.current_price,
                },
            )
            if self.event_store:
                self.event_store.add_event(
                    trace_id=get_current_trace(),
                    event_type=ALERT_TRIGGERED,
                    component="AlertEvaluator",
                    message=f"Alert {rule.id} triggered for {rule.asset_id}",
                    context={"rule_id": rule.id, "asset_id": rule.asset_id, "kind": rule.kind},
                )

        return triggered
