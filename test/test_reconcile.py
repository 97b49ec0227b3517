import unittest
import sys
import os
import random

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from welldemux.reconcile import matepairs, reconcile, rescue, singles


def reads(*ids):
    return dict.fromkeys(ids, None)


class TestSetOperations(unittest.TestCase):
    def test_matepairs_by_id_only(self):
        r1 = {"r1": "a", "r2": "b"}
        r2 = {"r2": "something else", "r3": "c"}
        self.assertEqual(matepairs(r1, r2), {"r2"})

    def test_singles(self):
        self.assertEqual(singles(reads("r1", "r2", "r3"), {"r2"}), {"r1", "r3"})
        self.assertEqual(singles(reads(), {"r2"}), set())

    def test_rescue(self):
        self.assertEqual(rescue({"r1", "r4"}, reads("r1", "r9")), {"r1"})
        self.assertEqual(rescue({"r1"}, reads()), set())


class TestReconcile(unittest.TestCase):
    def test_scenario_a(self):
        out = reconcile(reads("r1", "r2", "r3"), reads("r2", "r3", "r4"))
        self.assertEqual(out.matepairs, {"r2", "r3"})
        self.assertEqual(out.singles1, {"r1"})
        self.assertEqual(out.singles2, {"r4"})
        self.assertEqual(out.scrounged, set())
        self.assertEqual(out.remaining1, {"r1"})
        self.assertEqual(out.remaining2, {"r4"})

    def test_scenario_b(self):
        out = reconcile(
            reads("r1", "r2", "r3"),
            reads("r2", "r3", "r4"),
            untagged1=reads(),
            untagged2=reads("r1"),
        )
        self.assertEqual(out.rescued1, {"r1"})
        self.assertEqual(out.rescued2, set())
        self.assertEqual(out.scrounged, {"r1"})
        self.assertEqual(out.remaining1, set())
        self.assertEqual(out.remaining2, {"r4"})
        self.assertEqual(out.paired, {"r1", "r2", "r3"})

    def test_rescue_uses_opposite_pool(self):
        # r1 is a forward single; finding it in the forward untagged pool is no rescue
        out = reconcile(reads("r1"), reads(), untagged1=reads("r1"), untagged2=reads())
        self.assertEqual(out.scrounged, set())
        out = reconcile(reads(), reads("r5"), untagged1=reads("r5"), untagged2=reads())
        self.assertEqual(out.rescued2, {"r5"})

    def test_already_paired_input(self):
        out = reconcile(reads("a", "b"), reads("a", "b"), reads("a", "x"), reads("b", "y"))
        self.assertEqual(out.matepairs, {"a", "b"})
        self.assertEqual(out.singles1 | out.singles2, set())
        self.assertEqual(out.scrounged, set())

    def test_partition_properties(self):
        rng = random.Random(7)
        universe = [f"read{i}" for i in range(200)]
        for _ in range(25):
            r1 = reads(*rng.sample(universe, 80))
            r2 = reads(*rng.sample(universe, 80))
            u1 = reads(*[i for i in rng.sample(universe, 60) if i not in r1])
            u2 = reads(*[i for i in rng.sample(universe, 60) if i not in r2])

            strict = reconcile(r1, r2)
            parts = [strict.matepairs, strict.singles1, strict.singles2]
            self.assertEqual(set().union(*parts), r1.keys() | r2.keys())
            self.assertEqual(sum(map(len, parts)), len(r1.keys() | r2.keys()))

            out = reconcile(r1, r2, u1, u2)
            self.assertEqual(out.matepairs & out.scrounged, set())
            self.assertTrue(out.scrounged <= out.singles1 | out.singles2)
            parts = [out.matepairs, out.scrounged, out.remaining1, out.remaining2]
            self.assertEqual(set().union(*parts), r1.keys() | r2.keys())
            self.assertEqual(sum(map(len, parts)), len(r1.keys() | r2.keys()))


if __name__ == '__main__':
    unittest.main()
