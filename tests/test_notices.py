from __future__ import annotations

from pathlib import Path
import tempfile
import unittest

from vdresser.notices import NoticeBoard


class NoticeBoardTests(unittest.TestCase):
    def setUp(self) -> None:
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        self.board = NoticeBoard(log_path=Path(tmp.name) / "logs" / "vdresser.log", history=3, echo=False)

    def test_post_keeps_bounded_history_and_logs(self) -> None:
        for i in range(5):
            self.board.post(f"n{i}")
        self.assertEqual([n.title for n in self.board.recent()], ["n2", "n3", "n4"])
        self.board.post("AI Error", "Could not adjust model fit.", variant="destructive")
        log = self.board.read_recent_logs()
        self.assertIn("[INFO] notice: n4", log)
        self.assertIn("[ERROR] notice: AI Error: Could not adjust model fit.", log)

    def test_recent_filters_by_age(self) -> None:
        notice = self.board.post("Model Loaded", "shirt.glb is ready.")
        self.assertEqual(self.board.recent(4.0, now=notice.created + 1.0), [notice])
        self.assertEqual(self.board.recent(4.0, now=notice.created + 10.0), [])

    def test_listeners_receive_posts_until_unsubscribed(self) -> None:
        seen: list[str] = []
        token = self.board.subscribe(lambda n: seen.append(n.title))
        self.board.post("one")
        self.board.unsubscribe(token)
        self.board.post("two")
        self.assertEqual(seen, ["one"])

    def test_failing_listener_does_not_stop_post(self) -> None:
        def boom(_notice):
            raise RuntimeError("listener broke")

        self.board.subscribe(boom)
        notice = self.board.post("still posted")
        self.assertEqual(self.board.recent()[-1], notice)
        self.assertIn("Notice listener failed: listener broke", self.board.read_recent_logs())

    def test_read_logs_without_file(self) -> None:
        self.assertEqual(self.board.read_recent_logs(), "No logs available.")


if __name__ == "__main__":
    unittest.main()
