import unittest

from activeregistry.cache import QUERY_CACHE_LIMIT, CacheStats, QueryCache


class QueryCacheTests(unittest.TestCase):
    def test_stats_are_zero_before_any_query(self) -> None:
        self.assertEqual(QueryCache().stats(), CacheStats(0, 0, 0.0, 0))

    def test_lookup_counts_hits_and_misses(self) -> None:
        cache = QueryCache()
        self.assertIsNone(cache.lookup("k"))
        cache.store("k", [1, 2])
        self.assertEqual(cache.lookup("k"), (1, 2))
        self.assertEqual(cache.lookup("k"), (1, 2))

        stats = cache.stats()
        self.assertEqual((stats.hits, stats.misses, stats.total_queries), (2, 1, 3))
        self.assertEqual(stats.hit_rate, 66.67)
        self.assertEqual(stats.as_dict()["hit_rate"], 66.67)

    def test_store_copies_the_result(self) -> None:
        cache = QueryCache()
        result = [1, 2]
        cache.store("k", result)
        result.append(3)
        self.assertEqual(cache.lookup("k"), (1, 2))

    def test_empty_result_is_still_a_hit(self) -> None:
        cache = QueryCache()
        cache.store("k", [])
        self.assertEqual(cache.lookup("k"), ())
        self.assertEqual(cache.stats().hits, 1)

    def test_full_cache_rejects_new_keys(self) -> None:
        cache = QueryCache(capacity=2)
        self.assertTrue(cache.store("a", [1]))
        self.assertTrue(cache.store("b", [2]))
        self.assertFalse(cache.store("c", [3]))
        self.assertNotIn("c", cache)
        # Existing keys may still be refreshed.
        self.assertTrue(cache.store("a", [4]))
        self.assertEqual(len(cache), 2)

    def test_invalidate_all_clears_entries_but_not_counters(self) -> None:
        cache = QueryCache()
        cache.store("k", [1])
        cache.lookup("k")
        cache.invalidate_all()
        self.assertEqual(len(cache), 0)
        self.assertIsNone(cache.lookup("k"))
        self.assertEqual(cache.stats().total_queries, 2)

    def test_reset_stats(self) -> None:
        cache = QueryCache()
        cache.lookup("k")
        cache.reset_stats()
        self.assertEqual(cache.stats().total_queries, 0)

    def test_capacity_validation_and_default(self) -> None:
        self.assertEqual(QueryCache().capacity, QUERY_CACHE_LIMIT)
        with self.assertRaises(ValueError):
            QueryCache(capacity=-1)


if __name__ == "__main__":
    unittest.main()
