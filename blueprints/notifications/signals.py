# blueprints/notifications/signals.py
import logging

from blinker import Namespace

log = logging.getLogger(__name__)

_signals = Namespace()

# sender: имя действия; kwargs: schedule (dict), actor (dict), reason
schedule_changed = _signals.signal("schedule-changed")
# kwargs: original (dict), segments (list[dict]), actor, reason
schedule_split = _signals.signal("schedule-split")


def emit(sig, sender: str, **payload) -> None:
    """Событие «для сведения»: ошибки подписчиков не должны ломать запрос."""
    try:
        sig.send(sender, **payload)
    except Exception:
        log.exception("notification subscriber failed", extra={"event": "notify_failed"})
