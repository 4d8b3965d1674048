import unittest

from reelcut.events import EVENT_IMPORT, EventBus
from reelcut.model import Clip, MediaItem, Project, ProjectSettings
from reelcut.state import EditorState, Store


def _video(name="a.mp4", duration=10.0):
    return MediaItem(id=f"m-{name}", name=name, type="video/mp4", duration=duration)


class TestStore(unittest.TestCase):
    def test_subscribe_calls_immediately_and_on_set(self):
        s = Store(1)
        seen = []
        unsub = s.subscribe(seen.append)
        s.set(2)
        s.update(lambda v: v + 10)
        unsub()
        s.set(99)
        self.assertEqual(seen, [1, 2, 12])
        self.assertEqual(s.get(), 99)

    def test_failing_subscriber_is_logged(self):
        s = Store(0)
        seen = []

        def broken(v):
            if v:
                raise RuntimeError("nope")

        s.subscribe(broken)
        s.subscribe(seen.append)
        with self.assertLogs("reelcut", level="ERROR"):
            s.set(1)
        self.assertEqual(seen, [0, 1])


class TestEditorState(unittest.TestCase):
    def test_place_clip_appends_and_indexes(self):
        st = EditorState()
        r1 = st.place_clip(_video("a.mp4", 4.0))
        r2 = st.place_clip(_video("b.mp4", 6.0))
        self.assertTrue(r1.ok and r2.ok)
        clips = st.clips("main")
        self.assertEqual([c.id for c in clips], [r1.clip_id, r2.clip_id])
        self.assertAlmostEqual(clips[1].start_offset, 4.0)
        self.assertEqual(st.track_of(r2.clip_id), "main")
        self.assertIs(st.find_clip(r2.clip_id), clips[1])
        self.assertAlmostEqual(st.timeline_duration(), 10.0)

    def test_place_clip_routes_audio(self):
        st = EditorState()
        r = st.place_clip(MediaItem(id="m", name="s.mp3", type="audio/mpeg", duration=3.0))
        self.assertEqual(st.track_of(r.clip_id), "audio")
        self.assertEqual(st.clips("main"), [])

    def test_place_clip_unsupported(self):
        st = EditorState()
        with self.assertLogs("reelcut", level="WARNING"):
            r = st.place_clip(MediaItem(id="m", name="doc.pdf", type="application/pdf"))
        self.assertFalse(r.ok)

    def test_place_clip_at_offset_pushes_neighbors(self):
        st = EditorState()
        a = st.place_clip(_video("a.mp4", 4.0))
        b = st.place_clip(_video("b.mp4", 2.0), start_offset=1.0)
        clips = st.clips("main")
        self.assertEqual([c.id for c in clips], [a.clip_id, b.clip_id])
        self.assertAlmostEqual(clips[1].start_offset, 4.0)

    def test_split_via_state(self):
        st = EditorState()
        r = st.place_clip(_video("a.mp4", 10.0))
        res = st.split_clip(r.clip_id, 4.0)
        self.assertTrue(res.ok)
        self.assertEqual(res.message, "Split")
        self.assertEqual(st.track_of(res.clip_id), "main")
        self.assertEqual(len(st.clips("main")), 2)
        self.assertAlmostEqual(st.find_clip(res.clip_id).start_offset, 4.0)

    def test_split_rejected_leaves_track_untouched(self):
        st = EditorState()
        r = st.place_clip(_video("a.mp4", 10.0))
        before = st.clips("main")
        changes = []
        st.subscribe(lambda: changes.append(1))
        with self.assertLogs("reelcut", level="WARNING"):
            res = st.split_clip(r.clip_id, 0.05)
        self.assertFalse(res.ok)
        self.assertIs(st.clips("main"), before)
        self.assertEqual(changes, [])

    def test_split_unknown_clip(self):
        st = EditorState()
        with self.assertLogs("reelcut", level="WARNING"):
            res = st.split_clip("missing", 1.0)
        self.assertFalse(res.ok)
        self.assertIn("not found", res.message)

    def test_move_trim_delete(self):
        st = EditorState()
        a = st.place_clip(_video("a.mp4", 4.0))
        b = st.place_clip(_video("b.mp4", 4.0))

        self.assertTrue(st.move_clip(b.clip_id, 10.0).ok)
        self.assertAlmostEqual(st.find_clip(b.clip_id).start_offset, 10.0)
        self.assertFalse(st.move_clip(b.clip_id, 10.0).ok)

        self.assertTrue(st.trim_clip(a.clip_id, 1.0, 2.0).ok)
        self.assertAlmostEqual(st.find_clip(a.clip_id).duration, 2.0)

        self.assertTrue(st.delete_clip(a.clip_id).ok)
        self.assertIsNone(st.track_of(a.clip_id))
        self.assertFalse(st.delete_clip(a.clip_id).ok)

    def test_text_clip(self):
        st = EditorState()
        r = st.add_text_clip(text="Title")
        self.assertEqual(st.track_of(r.clip_id), "text")
        self.assertEqual(st.find_clip(r.clip_id).style.text, "Title")

    def test_add_media_emits_import_event(self):
        bus = EventBus()
        events = []
        bus.subscribe(events.append)
        st = EditorState(events=bus)
        st.add_media(_video("a.mp4", 7.0))
        self.assertEqual(len(st.library.get()), 1)
        self.assertEqual(events[0].type, EVENT_IMPORT)
        self.assertEqual(events[0].filename, "a.mp4")
        self.assertTrue(st.remove_media("m-a.mp4"))
        self.assertFalse(st.remove_media("m-a.mp4"))

    def test_subscribe_skips_registration(self):
        st = EditorState()
        changes = []
        unsub = st.subscribe(lambda: changes.append(1))
        self.assertEqual(changes, [])
        st.set_settings(1080, 1920, "9:16")
        st.add_text_clip()
        self.assertEqual(len(changes), 2)
        unsub()
        st.add_text_clip()
        self.assertEqual(len(changes), 2)

    def test_snapshot_restore_reset(self):
        st = EditorState()
        st.place_clip(_video("a.mp4", 4.0))
        st.set_settings(1080, 1920, "9:16")
        snap = st.snapshot()
        self.assertEqual(len(snap.tracks["main"]), 1)
        self.assertEqual(snap.settings.aspect_ratio, "9:16")

        st.reset()
        self.assertEqual(st.clips("main"), [])
        self.assertEqual(st.settings.get(), ProjectSettings())

        st.restore(snap)
        cid = snap.tracks["main"][0].id
        self.assertEqual(st.track_of(cid), "main")

    def test_restore_rebuilds_index(self):
        st = EditorState()
        c = Clip(id="x", kind="text", start_offset=0.0, duration=1.0)
        st.restore(Project(tracks={"main": [], "audio": [], "text": [c]}))
        self.assertEqual(st.track_of("x"), "text")
        st.reset()
        self.assertIsNone(st.track_of("x"))


if __name__ == "__main__":
    unittest.main()
