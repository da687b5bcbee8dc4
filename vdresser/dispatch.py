from __future__ import annotations

import queue
import threading
from typing import Any, Callable, Optional, Protocol, Tuple


Completion = Callable[[Any, Optional[BaseException]], None]


class Dispatcher(Protocol):
    def submit(self, call: Callable[[], Any], on_done: Completion) -> None: ...

    def drain(self) -> int: ...

    def pending(self) -> int: ...

    def close(self) -> None: ...


class ThreadedDispatcher:
    """Runs calls on worker threads; completions run on whoever calls ``drain``.

    The frame loop drains at the start of every tick, so completion callbacks
    only ever touch controller state from the loop thread.
    """

    def __init__(self, name: str = "vdresser-advisor") -> None:
        self.name = name
        self._done: "queue.Queue[Tuple[Completion, Any, Optional[BaseException]]]" = queue.Queue()
        self._lock = threading.Lock()
        self._outstanding = 0
        self._closed = False

    def submit(self, call: Callable[[], Any], on_done: Completion) -> None:
        with self._lock:
            if self._closed:
                raise RuntimeError("Dispatcher is closed.")
            self._outstanding += 1

        def _run() -> None:
            result: Any = None
            error: Optional[BaseException] = None
            try:
                result = call()
            except BaseException as exc:
                error = exc
            self._done.put((on_done, result, error))

        threading.Thread(target=_run, name=self.name, daemon=True).start()

    def drain(self) -> int:
        delivered = 0
        while True:
            try:
                on_done, result, error = self._done.get_nowait()
            except queue.Empty:
                return delivered
            with self._lock:
                self._outstanding -= 1
            delivered += 1
            on_done(result, error)

    def pending(self) -> int:
        with self._lock:
            return self._outstanding

    def close(self) -> None:
        with self._lock:
            self._closed = True
