import random
import unittest

from reelcut.model import Clip
from reelcut.ripple import has_overlaps, order_clips, reflow
from reelcut.timeline import move_clip, split_clip


def _clip(cid, start, dur):
    return Clip(id=cid, kind="video", start_offset=start, duration=dur)


def _layout(clips):
    return [(c.id, round(c.start_offset, 9), round(c.duration, 9)) for c in clips]


class TestReflow(unittest.TestCase):
    def test_pushes_overlapping_clip_to_previous_end(self):
        a = _clip("a", 0.0, 5.0)
        b = _clip("b", 3.0, 2.0)
        out = reflow([a, b])
        self.assertEqual([c.id for c in out], ["a", "b"])
        self.assertAlmostEqual(out[1].start_offset, 5.0)

    def test_push_cascades_forward(self):
        a = _clip("a", 0.0, 5.0)
        b = _clip("b", 4.0, 2.0)
        c = _clip("c", 6.5, 1.0)
        out = reflow([c, b, a])
        self.assertEqual([x.id for x in out], ["a", "b", "c"])
        self.assertAlmostEqual(out[1].start_offset, 5.0)
        self.assertAlmostEqual(out[2].start_offset, 7.0)

    def test_gaps_are_preserved(self):
        a = _clip("a", 0.0, 1.0)
        b = _clip("b", 10.0, 1.0)
        out = reflow([a, b])
        self.assertAlmostEqual(out[1].start_offset, 10.0)

    def test_tiny_overlap_is_ignored(self):
        a = _clip("a", 0.0, 1.0)
        b = _clip("b", 0.9995, 1.0)
        out = reflow([a, b])
        self.assertIs(out[1], b)
        self.assertAlmostEqual(out[1].start_offset, 0.9995)

    def test_overlap_just_over_tolerance_is_fixed(self):
        a = _clip("a", 0.0, 1.0)
        b = _clip("b", 0.998, 1.0)
        out = reflow([a, b])
        self.assertAlmostEqual(out[1].start_offset, 1.0)

    def test_active_clip_wins_near_tie(self):
        a = _clip("a", 2.0, 3.0)
        b = _clip("b", 2.005, 1.0)
        out = reflow([a, b], active_id="b")
        self.assertEqual([c.id for c in out], ["b", "a"])
        self.assertAlmostEqual(out[0].start_offset, 2.005)
        self.assertAlmostEqual(out[1].start_offset, 3.005)

    def test_without_active_sorts_by_start(self):
        a = _clip("a", 2.0, 3.0)
        b = _clip("b", 2.005, 1.0)
        out = reflow([b, a])
        self.assertEqual([c.id for c in out], ["a", "b"])
        self.assertAlmostEqual(out[1].start_offset, 5.0)

    def test_active_outside_epsilon_does_not_jump(self):
        a = _clip("a", 2.0, 3.0)
        b = _clip("b", 2.02, 1.0)
        out = reflow([a, b], active_id="b")
        self.assertEqual([c.id for c in out], ["a", "b"])

    def test_active_jumps_every_tied_predecessor(self):
        a = _clip("a", 1.0, 1.0)
        b = _clip("b", 1.004, 1.0)
        c = _clip("c", 1.008, 1.0)
        self.assertEqual([x.id for x in order_clips([a, b, c], active_id="c")], ["c", "a", "b"])

    def test_unknown_active_id_is_ignored(self):
        a = _clip("a", 0.0, 1.0)
        self.assertEqual(_layout(reflow([a], active_id="zzz")), _layout([a]))

    def test_input_is_not_mutated(self):
        a = _clip("a", 0.0, 5.0)
        b = _clip("b", 1.0, 1.0)
        reflow([a, b])
        self.assertAlmostEqual(b.start_offset, 1.0)

    def test_empty(self):
        self.assertEqual(reflow([]), [])

    def test_idempotent(self):
        rng = random.Random(7)
        for _ in range(50):
            clips = [_clip(f"c{i}", rng.uniform(0, 30), rng.uniform(0.2, 6)) for i in range(12)]
            active = rng.choice(clips).id
            once = reflow(clips, active_id=active)
            twice = reflow(once, active_id=active)
            self.assertEqual(_layout(once), _layout(twice))

    def test_no_overlaps_after_random_edits(self):
        rng = random.Random(11)
        clips = reflow([_clip(f"c{i}", rng.uniform(0, 20), rng.uniform(0.5, 4)) for i in range(8)])
        for _ in range(200):
            target = rng.choice(clips)
            if rng.random() < 0.5:
                clips, _msg = move_clip(clips, target.id, rng.uniform(0, 40))
            else:
                clips, _new_id, _msg = split_clip(clips, target.id, target.start_offset + rng.uniform(0, target.duration))
            self.assertFalse(has_overlaps(clips))
            ordered = sorted(clips, key=lambda c: c.start_offset)
            for x, y in zip(ordered, ordered[1:]):
                self.assertLessEqual(x.end, y.start_offset + 1e-3)


class TestHasOverlaps(unittest.TestCase):
    def test_adjacent_is_not_overlap(self):
        self.assertFalse(has_overlaps([_clip("a", 0.0, 1.0), _clip("b", 1.0, 1.0)]))

    def test_overlap(self):
        self.assertTrue(has_overlaps([_clip("a", 0.0, 2.0), _clip("b", 1.0, 1.0)]))


if __name__ == "__main__":
    unittest.main()
