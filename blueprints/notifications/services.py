# blueprints/notifications/services.py
from __future__ import annotations
import atexit
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

import httpx
from flask import Flask, current_app, has_app_context

from .signals import schedule_changed, schedule_split

log = logging.getLogger(__name__)

ACTION_LABELS = {
    "created": "Новая заявка",
    "updated": "Заявка изменена",
    "request_approval": "Запрошено подтверждение",
    "approve": "Заявка одобрена",
    "reject": "Заявка отклонена",
    "confirm": "Съёмка подтверждена",
    "request_modification": "Запрошено изменение",
    "approve_modification": "Изменение разрешено",
    "complete_modification": "Изменение внесено",
    "request_cancellation": "Запрошена отмена",
    "approve_cancellation": "Съёмка отменена",
    "revoke": "Запрос отозван",
    "delete": "Заявка удалена",
    "split": "Съёмка разделена",
    "merge": "Части съёмки объединены",
}


def _hhmm(value: Optional[str]) -> str:
    return (value or "")[:5]


def render_message(action: str, schedule: dict, actor: Optional[dict] = None,
                   reason: Optional[str] = None) -> str:
    lines = [
        f"[{ACTION_LABELS.get(action, action)}]",
        f"{schedule.get('shoot_date')} {_hhmm(schedule.get('start_time'))}-{_hhmm(schedule.get('end_time'))}",
        f"Преподаватель: {schedule.get('professor_name') or '-'}",
    ]
    if schedule.get("course_name"):
        lines.append(f"Курс: {schedule['course_name']}")
    if schedule.get("studio_id"):
        lines.append(f"Студия: {schedule['studio_id']}")
    if reason:
        lines.append(f"Причина: {reason}")
    if actor and actor.get("name"):
        lines.append(f"Кто: {actor['name']}")
    return "\n".join(lines)


def render_split_message(original: dict, segments: list[dict], reason: Optional[str] = None) -> str:
    head = render_message("split", original, reason=reason)
    parts = [f"  {i}. {_hhmm(s.get('start_time'))}-{_hhmm(s.get('end_time'))}"
             for i, s in enumerate(segments, start=1)]
    return head + "\n" + "\n".join(parts)


class Notifier:
    """Доставка текстовых уведомлений в вебхук. Ошибки только логируются."""

    def __init__(self, url: Optional[str], timeout: float = 5.0, workers: int = 2):
        self.url = url
        self.timeout = timeout
        self.workers = workers
        self._pool: Optional[ThreadPoolExecutor] = None

    def _executor(self) -> ThreadPoolExecutor:
        # пул создаётся при первой отправке и закрывается при выходе процесса
        if self._pool is None:
            self._pool = ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="notify")
            atexit.register(self.close)
        return self._pool

    def close(self) -> None:
        if self._pool is not None:
            self._pool.shutdown(wait=True)
            self._pool = None

    def _post(self, text: str) -> None:
        with httpx.Client(timeout=self.timeout) as client:
            resp = client.post(self.url, json={"content": {"type": "text", "text": text}})
            resp.raise_for_status()

    def _deliver(self, text: str) -> None:
        try:
            self._post(text)
            log.info("notification sent", extra={"event": "notify_sent"})
        except httpx.HTTPError as e:
            log.warning("notification delivery failed: %s", e, extra={"event": "notify_failed"})

    def send(self, text: str) -> None:
        if not self.url:
            log.info("notification (no webhook): %s", text.splitlines()[0], extra={"event": "notify_skipped"})
            return
        if self.workers <= 0:
            self._deliver(text)
        else:
            self._executor().submit(self._deliver, text)


def _current_notifier() -> Optional[Notifier]:
    if not has_app_context():
        return None
    return current_app.extensions.get("notifier")


@schedule_changed.connect
def _on_changed(sender, schedule=None, actor=None, reason=None, **_):
    notifier = _current_notifier()
    if notifier is not None:
        notifier.send(render_message(sender, schedule or {}, actor, reason))


@schedule_split.connect
def _on_split(sender, original=None, segments=None, reason=None, **_):
    notifier = _current_notifier()
    if notifier is not None:
        notifier.send(render_split_message(original or {}, segments or [], reason))


def init_app(app: Flask) -> Notifier:
    notifier = Notifier(
        url=app.config.get("NOTIFY_WEBHOOK_URL"),
        timeout=app.config.get("NOTIFY_TIMEOUT", 5.0),
        workers=app.config.get("NOTIFY_WORKERS", 2),
    )
    app.extensions["notifier"] = notifier
    return notifier
