from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
import time
from typing import Callable, Deque, Literal, Optional


NoticeVariant = Literal["default", "destructive"]


@dataclass(frozen=True)
class Notice:
    title: str
    description: str = ""
    variant: NoticeVariant = "default"
    created: float = field(default_factory=time.monotonic, compare=False)

    def text(self) -> str:
        if self.description:
            return f"{self.title}: {self.description}"
        return self.title


NoticeListener = Callable[[Notice], None]


def default_log_path() -> Path:
    return Path(__file__).resolve().parent.parent / "sessions" / "logs" / "vdresser.log"


class NoticeBoard:
    """User-visible notices plus the application log file."""

    def __init__(
        self,
        log_path: Optional[Path] = None,
        history: int = 50,
        echo: bool = True,
    ) -> None:
        self.log_path = log_path or default_log_path()
        self.echo = echo
        self._history: Deque[Notice] = deque(maxlen=max(1, int(history)))
        self._listeners: dict[int, NoticeListener] = {}
        self._next_listener_id = 1

    def post(self, title: str, description: str = "", variant: NoticeVariant = "default") -> Notice:
        notice = Notice(title=title, description=description, variant=variant)
        self._history.append(notice)
        self.log("ERROR" if variant == "destructive" else "INFO", f"notice: {notice.text()}")
        if self.echo:
            print(f"[vdresser] {notice.text()}")
        for callback in list(self._listeners.values()):
            try:
                callback(notice)
            except Exception as exc:
                self.log("WARNING", f"Notice listener failed: {exc}")
        return notice

    def recent(self, max_age_s: Optional[float] = None, now: Optional[float] = None) -> list[Notice]:
        items = list(self._history)
        if max_age_s is None:
            return items
        now = time.monotonic() if now is None else now
        return [n for n in items if now - n.created <= max_age_s]

    def subscribe(self, callback: NoticeListener) -> int:
        token = self._next_listener_id
        self._next_listener_id += 1
        self._listeners[token] = callback
        return token

    def unsubscribe(self, token: int) -> None:
        self._listeners.pop(token, None)

    def log(self, level: str, message: str) -> None:
        try:
            self.log_path.parent.mkdir(parents=True, exist_ok=True)
            timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
            line = f"{timestamp} [{level}] {message}\n"
            with self.log_path.open("a", encoding="utf-8") as f:
                f.write(line)
        except Exception:
            return

    def read_recent_logs(self, max_lines: int = 120) -> str:
        if not self.log_path.exists():
            return "No logs available."
        try:
            lines = self.log_path.read_text(encoding="utf-8").splitlines()
        except Exception as exc:
            return f"Unable to read logs: {exc}"
        tail = lines[-max_lines:] if max_lines > 0 else lines
        return "\n".join(tail)
