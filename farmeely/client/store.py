import itertools
import logging
from collections import Counter
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, List, Literal, Optional, Tuple

logger = logging.getLogger(__name__)

Variant = Literal["default", "success", "destructive"]

# only the newest toast is shown
TOAST_LIMIT = 1


@dataclass(frozen=True)
class Toast:
    id: str
    title: str
    description: Optional[str] = None
    variant: Variant = "default"
    open: bool = True


Listener = Callable[[Tuple[Toast, ...]], None]


class NotificationStore:
    """Publish/subscribe holder for user-facing notifications.

    Listeners receive an immutable snapshot of the visible toasts after each
    change. ``subscribe`` returns the function that removes the listener.
    """

    def __init__(self, limit: int = TOAST_LIMIT):
        self.limit = limit
        self._toasts: Tuple[Toast, ...] = ()
        self._listeners: List[Listener] = []
        self._ids = itertools.count(1)

    @property
    def toasts(self) -> Tuple[Toast, ...]:
        return self._toasts

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _publish(self, toasts: Tuple[Toast, ...]):
        self._toasts = toasts
        for listener in list(self._listeners):
            listener(self._toasts)

    def toast(self, title: str, description: Optional[str] = None, variant: Variant = "default") -> Toast:
        item = Toast(id=str(next(self._ids)), title=title, description=description, variant=variant)
        self._publish(((item,) + self._toasts)[: self.limit])
        return item

    def success(self, title: str, description: Optional[str] = None) -> Toast:
        return self.toast(title, description, "success")

    def error(self, description: str, title: str = "Error") -> Toast:
        return self.toast(title, description, "destructive")

    def update(self, toast_id: str, **changes) -> None:
        self._publish(tuple(replace(t, **changes) if t.id == toast_id else t for t in self._toasts))

    def dismiss(self, toast_id: Optional[str] = None) -> None:
        self._publish(tuple(replace(t, open=False) if toast_id in (None, t.id) else t for t in self._toasts))

    def remove(self, toast_id: Optional[str] = None) -> None:
        if toast_id is None:
            self._publish(())
        else:
            self._publish(tuple(t for t in self._toasts if t.id != toast_id))


class QueryCache:
    """Keyed cache of fetched data; ``invalidate`` drops a key so the next read refetches."""

    def __init__(self):
        self._data: Dict[str, Any] = {}
        self.invalidations: Counter = Counter()

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value

    def __contains__(self, key: str) -> bool:
        return key in self._data

    def invalidate(self, key: str) -> None:
        self._data.pop(key, None)
        self.invalidations[key] += 1
        logger.debug("Invalidated %s", key)

    async def fetch(self, key: str, loader: Callable[[], Any]) -> Any:
        """Return the cached value for ``key``, awaiting ``loader()`` on a miss."""
        if key not in self._data:
            self._data[key] = await loader()
        return self._data[key]
