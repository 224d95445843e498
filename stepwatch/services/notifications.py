from collections import defaultdict, deque
from threading import Lock
from typing import Deque, Dict, List

from stepwatch.models import Notification

DIALOG_TITLE = "Health data availability"
DIALOG_ACTION = "OK"


class NotificationQueue:
    """Per-screen queue of dialogs and toasts waiting to be shown."""

    def __init__(self):
        self._topics: Dict[str, Deque[Notification]] = defaultdict(deque)
        self._lock = Lock()

    def publish(self, topic: str, notification: Notification) -> None:
        with self._lock:
            self._topics[topic].append(notification)

    def dialog(self, topic: str, message: str) -> Notification:
        notification = Notification(kind="dialog", title=DIALOG_TITLE, message=message, action=DIALOG_ACTION)
        self.publish(topic, notification)
        return notification

    def toast(self, topic: str, message: str, duration: str = "long") -> Notification:
        notification = Notification(kind="toast", message=message, duration=duration)
        self.publish(topic, notification)
        return notification

    def pop_all(self, topic: str) -> List[Notification]:
        with self._lock:
            return list(self._topics.pop(topic, ()))

    def discard(self, topic: str) -> None:
        with self._lock:
            self._topics.pop(topic, None)
