from __future__ import annotations

import threading
import time
import unittest

from vdresser.dispatch import ThreadedDispatcher


def _drain_until(dispatcher: ThreadedDispatcher, count: int, timeout_s: float = 5.0) -> int:
    delivered = 0
    deadline = time.monotonic() + timeout_s
    while delivered < count and time.monotonic() < deadline:
        delivered += dispatcher.drain()
        time.sleep(0.005)
    return delivered


class ThreadedDispatcherTests(unittest.TestCase):
    def test_completion_is_delivered_only_by_drain(self) -> None:
        dispatcher = ThreadedDispatcher()
        release = threading.Event()
        results: list = []

        def call():
            release.wait(5.0)
            return "advice"

        dispatcher.submit(call, lambda result, error: results.append((result, error, threading.current_thread())))
        self.assertEqual(dispatcher.pending(), 1)
        self.assertEqual(dispatcher.drain(), 0)
        self.assertEqual(results, [])

        release.set()
        self.assertEqual(_drain_until(dispatcher, 1), 1)
        self.assertEqual(dispatcher.pending(), 0)
        result, error, thread = results[0]
        self.assertEqual(result, "advice")
        self.assertIsNone(error)
        self.assertIs(thread, threading.current_thread())

    def test_errors_are_handed_to_the_completion(self) -> None:
        dispatcher = ThreadedDispatcher()
        results: list = []

        def call():
            raise ValueError("bad reply")

        dispatcher.submit(call, lambda result, error: results.append((result, error)))
        self.assertEqual(_drain_until(dispatcher, 1), 1)
        result, error = results[0]
        self.assertIsNone(result)
        self.assertIsInstance(error, ValueError)

    def test_closed_dispatcher_refuses_work(self) -> None:
        dispatcher = ThreadedDispatcher()
        dispatcher.close()
        with self.assertRaises(RuntimeError):
            dispatcher.submit(lambda: None, lambda result, error: None)
        self.assertEqual(dispatcher.pending(), 0)


if __name__ == "__main__":
    unittest.main()
