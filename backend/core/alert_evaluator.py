"""Alert evaluation against live ticks.

Alerts are edge-triggered: an alert fires once when its condition becomes
true and stays silent while the price remains past the threshold, until
its active flag is toggled off and on again.
"""

import logging

from core.models import Alert, AlertCondition, AlertFired, AlertKind, PriceTick

logger = logging.getLogger(__name__)


def check_condition(alert: Alert, price: float) -> bool:
    """Check whether ``price`` satisfies the alert's condition.

    Price thresholds are closed: a price equal to the threshold matches.
    Volume and trend alerts are accepted but never match; no volume or
    trend data is evaluated yet.
    """
    if alert.kind != AlertKind.PRICE:
        return False

    if alert.condition == AlertCondition.ABOVE:
        return price >= alert.threshold
    return price <= alert.threshold


class AlertEvaluator:
    """Decide fire / no-fire for alerts on each tick."""

    def evaluate(self, alert: Alert, tick: PriceTick) -> AlertFired | None:
        """Evaluate one alert against one tick.

        Marks the alert as fired when it triggers, so a second call with a
        matching price returns None until the alert is re-armed.

        Returns:
            AlertFired event, or None if the alert did not fire
        """
        if alert.symbol != tick.symbol or not alert.active:
            return None
        if not alert.is_armed:
            return None
        if not check_condition(alert, tick.price):
            return None

        alert.mark_fired(tick.observed_at)
        logger.info(
            f"Alert {alert.id} fired: {alert.symbol} {alert.condition.value} "
            f"{alert.threshold} at {tick.price}"
        )

        return AlertFired(
            alert_id=alert.id,
            symbol=alert.symbol,
            kind=alert.kind,
            condition=alert.condition,
            threshold=alert.threshold,
            price=tick.price,
            priority=alert.priority,
            fired_at=tick.observed_at,
        )

    def evaluate_all(self, alerts: list[Alert], tick: PriceTick) -> list[AlertFired]:
        """Evaluate every alert against a tick, in order."""
        fired = []
        for alert in alerts:
            event = self.evaluate(alert, tick)
            if event is not None:
                fired.append(event)
        return fired
