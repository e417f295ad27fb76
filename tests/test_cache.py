import unittest

from pm_agent.services.cache import ResponseCache


class _FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class ResponseCacheTests(unittest.TestCase):
    def setUp(self) -> None:
        self.clock = _FakeClock()
        self.cache = ResponseCache(default_ttl_sec=600, clock=self.clock)

    def test_entry_expires_after_ttl_and_key_is_reusable(self) -> None:
        self.cache.set("k", "v", ttl_sec=1)
        self.assertEqual(self.cache.get("k"), "v")

        self.clock.now = 1.1
        self.assertIsNone(self.cache.get("k"))
        self.assertEqual(len(self.cache), 0)

        self.cache.set("k", "v2", ttl_sec=1)
        self.assertEqual(self.cache.get("k"), "v2")

    def test_default_ttl_applies_when_omitted(self) -> None:
        self.cache.set("analysis:p1", {"summary": "ok"})

        self.clock.now = 599
        self.assertEqual(self.cache.get("analysis:p1"), {"summary": "ok"})
        self.clock.now = 601
        self.assertIsNone(self.cache.get("analysis:p1"))

    def test_set_overwrites_value_and_expiry(self) -> None:
        self.cache.set("k", "old", ttl_sec=1)
        self.cache.set("k", "new", ttl_sec=10)

        self.clock.now = 5
        self.assertEqual(self.cache.get("k"), "new")

    def test_delete_and_flush_invalidate_immediately(self) -> None:
        self.cache.set("a", 1)
        self.cache.set("b", 2)
        self.cache.set("c", 3)

        self.cache.delete("a")
        self.cache.delete("missing")
        self.assertIsNone(self.cache.get("a"))
        self.assertEqual(self.cache.get("b"), 2)

        self.cache.flush()
        self.assertIsNone(self.cache.get("b"))
        self.assertEqual(len(self.cache), 0)

    def test_purge_expired_only_removes_stale_entries(self) -> None:
        self.cache.set("short", 1, ttl_sec=1)
        self.cache.set("long", 2, ttl_sec=100)

        self.clock.now = 2
        removed = self.cache.purge_expired()

        self.assertEqual(removed, 1)
        self.assertEqual(len(self.cache), 1)
        self.assertEqual(self.cache.get("long"), 2)


if __name__ == "__main__":
    unittest.main()
