import logging
from collections import defaultdict
from typing import Any, Callable, Dict, List, NamedTuple, Optional, Union

from core.constants import CREATE_KEY
from schemas.action_status import (
    ActionPhase,
    ActionStatus,
    RefreshStatus,
    StatusSnapshot,
    utc_now,
)
from schemas.intents import IntentKind

logger = logging.getLogger(__name__)

REFRESH_TOPIC = "refresh"
ALL_TOPIC = "*"

ActiveSubscription = NamedTuple(
    "ActiveSubscription",
    [("callback", Callable[[str, Any], None]), ("subscription_id", int)],
)


def key_to_topic(key: Union[int, str, None]) -> str:
    if key is None:
        return ALL_TOPIC
    if key == CREATE_KEY or key == REFRESH_TOPIC:
        return key
    return f"campaign:{key}"


class StatusBoard:
    """Loading/error status per campaign id plus the full-refresh status.

    Subscribers are called with ``(topic, status)`` whenever a status they
    listen to changes.
    """

    def __init__(self):
        self.refresh = RefreshStatus()
        self._actions: Dict[Union[int, str], ActionStatus] = {}
        self.subscription_id_counter = 0
        self.active_subscriptions: Dict[str, List[ActiveSubscription]] = defaultdict(
            list
        )

    def subscribe(
        self, callback: Callable[[str, Any], None], key: Union[int, str, None] = None
    ) -> int:
        self.subscription_id_counter += 1
        topic = key_to_topic(key)
        self.active_subscriptions[topic].append(
            ActiveSubscription(callback, self.subscription_id_counter)
        )
        return self.subscription_id_counter

    def unsubscribe(self, subscription_id: int) -> bool:
        removed = False
        for topic, subscriptions in self.active_subscriptions.items():
            remaining = [x for x in subscriptions if x.subscription_id != subscription_id]
            removed = removed or len(remaining) != len(subscriptions)
            self.active_subscriptions[topic] = remaining
        return removed

    def _publish(self, topic: str, status: Any):
        subscribers = self.active_subscriptions.get(topic, []) + self.active_subscriptions.get(
            ALL_TOPIC, []
        )
        for subscription in subscribers:
            try:
                subscription.callback(topic, status)
            except Exception:
                logger.exception(
                    "Status subscriber %s failed on %s", subscription.subscription_id, topic
                )

    def get(self, key: Union[int, str]) -> Optional[ActionStatus]:
        return self._actions.get(key)

    def set_action(
        self,
        key: Union[int, str],
        kind: IntentKind,
        phase: ActionPhase,
        tx_hash: Optional[str] = None,
        error: Optional[dict] = None,
    ) -> ActionStatus:
        status = ActionStatus(key=key, kind=kind, phase=phase, tx_hash=tx_hash, error=error)
        self._actions[key] = status
        self._publish(key_to_topic(key), status)
        return status

    def refresh_started(self):
        self.refresh = self.refresh.model_copy(update={"loading": True})
        self._publish(REFRESH_TOPIC, self.refresh)

    def refresh_succeeded(self):
        self.refresh = RefreshStatus(loading=False, error=None, last_success_at=utc_now())
        self._publish(REFRESH_TOPIC, self.refresh)

    def refresh_failed(self, error: dict):
        # stays until a later refresh succeeds
        self.refresh = self.refresh.model_copy(update={"loading": False, "error": error})
        self._publish(REFRESH_TOPIC, self.refresh)

    def snapshot(self) -> StatusSnapshot:
        return StatusSnapshot(
            refresh=self.refresh,
            actions=[self._actions[k] for k in sorted(self._actions, key=str)],
        )

    def clear(self):
        self.refresh = RefreshStatus()
        self._actions.clear()
