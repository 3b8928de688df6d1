"""Change notification for registries.

Every registry owns a ``ChangeNotifier``. Each mutation bumps ``version``
and then calls the subscribed listeners with a ``ChangeEvent``. Consumers
that only need dirty-checking compare versions; consumers that need to react
subscribe.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from loomline.utils.telemetry import get_logger


@dataclass(frozen=True)
class ChangeEvent:
    """Describes one mutation of a registry."""

    source: str
    action: str
    version: int
    details: dict[str, Any] = field(default_factory=dict)


ChangeListener = Callable[[ChangeEvent], None]


class ChangeSubscription:
    """Handle returned by ``ChangeNotifier.subscribe``."""

    def __init__(self, notifier: "ChangeNotifier", listener: ChangeListener):
        self._notifier = notifier
        self.listener = listener
        self.active = True

    def cancel(self) -> None:
        if self.active:
            self._notifier._remove(self)
            self.active = False


class ChangeNotifier:
    """Version counter plus synchronous listener fan-out."""

    def __init__(self, source: str):
        self.source = source
        self.version = 0
        self._subscriptions: list[ChangeSubscription] = []
        self._logger = get_logger("loomline.events", source=source)

    def subscribe(self, listener: ChangeListener) -> ChangeSubscription:
        subscription = ChangeSubscription(self, listener)
        self._subscriptions.append(subscription)
        return subscription

    def _remove(self, subscription: ChangeSubscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

    @property
    def listener_count(self) -> int:
        return len(self._subscriptions)

    def notify(self, action: str, **details: Any) -> ChangeEvent:
        """Bump the version and deliver the event to every listener.

        Listener failures are logged and do not interrupt delivery to the
        remaining listeners; the mutation has already happened.
        """
        self.version += 1
        event = ChangeEvent(
            source=self.source, action=action, version=self.version, details=details
        )
        for subscription in list(self._subscriptions):
            try:
                subscription.listener(event)
            except Exception as e:
                self._logger.error(
                    "Change listener failed",
                    action=action,
                    version=self.version,
                    error=str(e),
                )
        return event
