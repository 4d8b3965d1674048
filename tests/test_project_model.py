import math
import unittest

from reelcut.model import (
    Clip,
    MediaItem,
    MediaPayload,
    Project,
    ProjectSettings,
    TextStyle,
    kind_from_type,
    track_for_kind,
)


class TestProjectModel(unittest.TestCase):
    def test_roundtrip(self):
        payload = MediaPayload(data=b"\x00\x01video", name="a.mp4", mime="video/mp4")
        thumb = MediaPayload(data=b"jpeg", name="thumb_000.jpg", mime="image/jpeg")
        v = Clip(
            id="v1",
            kind="video",
            start_offset=1.0,
            duration=2.0,
            source_duration=8.0,
            media_start_offset=3.0,
            volume=0.5,
            scale=1.2,
            x=10.0,
            y=-4.0,
            animation_in="fade",
            media=payload,
            thumbnails=[thumb],
        )
        t = Clip(
            id="t1",
            kind="text",
            start_offset=0.0,
            duration=3.0,
            style=TextStyle(text="Hi", color="#ff0000", bold=True),
        )
        item = MediaItem(id="m1", name="a.mp4", type="video/mp4", duration=8.0, media=payload, thumbnails=[thumb])
        p = Project(
            tracks={"main": [v], "audio": [], "text": [t]},
            library=[item],
            settings=ProjectSettings(width=1080, height=1920, aspect_ratio="9:16"),
            last_modified=1234,
        )

        p2 = Project.from_dict(p.to_dict())
        self.assertEqual(p2.tracks["main"], [v])
        self.assertEqual(p2.tracks["text"], [t])
        self.assertEqual(p2.tracks["audio"], [])
        self.assertEqual(p2.library[0].media, payload)
        self.assertEqual(p2.settings.aspect_ratio, "9:16")
        self.assertEqual(p2.settings.width, 1080)
        self.assertEqual(p2.last_modified, 1234)

    def test_infinite_source_stored_as_null(self):
        c = Clip(id="i", kind="image", start_offset=0.0, duration=3.0)
        d = c.to_dict()
        self.assertIsNone(d["source_duration"])
        self.assertTrue(math.isinf(Clip.from_dict(d).source_duration))

    def test_handle_is_not_persisted_or_compared(self):
        a = MediaPayload(data=b"x", name="a.mp4")
        a.handle = "/tmp/somewhere.mp4"
        b = MediaPayload(data=b"x", name="a.mp4")
        self.assertEqual(a, b)
        self.assertNotIn("handle", a.to_dict())

    def test_library_handles_not_persisted_for_owned_media(self):
        item = MediaItem(
            id="m",
            name="a.mp4",
            url="/tmp/h.mp4",
            thumbnail_urls=["/tmp/t.jpg"],
            media=MediaPayload(data=b"x"),
        )
        d = item.to_dict()
        self.assertEqual(d["url"], "")
        self.assertEqual(d["thumbnail_urls"], [])

        remote = MediaItem(id="r", name="s.mp4", url="https://example.com/s.mp4")
        self.assertEqual(remote.to_dict()["url"], "https://example.com/s.mp4")

    def test_clip_from_dict_defaults(self):
        c = Clip.from_dict({"id": "x", "start_offset": 1, "duration": 2, "volume": "bad"})
        self.assertEqual(c.kind, "video")
        self.assertAlmostEqual(c.volume, 1.0)
        self.assertAlmostEqual(c.media_start_offset, 0.0)
        self.assertIsNone(c.media)
        self.assertEqual(c.thumbnails, [])

    def test_clip_animation_names_kept_as_stored(self):
        blank = Clip.from_dict({"id": "x", "start_offset": 0, "duration": 2, "animation_in": "", "animation_out": "fade"})
        self.assertEqual(blank.animation_in, "")
        self.assertEqual(blank.animation_out, "fade")
        self.assertEqual(Clip.from_dict(blank.to_dict()).animation_in, "")
        unset = Clip.from_dict({"id": "y", "start_offset": 0, "duration": 2})
        self.assertIsNone(unset.animation_in)
        self.assertIsNone(unset.animation_out)

    def test_clip_from_dict_text_kind_fallback(self):
        c = Clip.from_dict({"id": "x", "start_offset": 0, "duration": 3, "kind": "??", "style": {"text": "a"}})
        self.assertEqual(c.kind, "text")
        self.assertEqual(c.style.text, "a")
        self.assertEqual(c.style.align, "center")

    def test_project_from_dict_missing_tracks_are_empty(self):
        p = Project.from_dict({"tracks": {"main": []}})
        self.assertEqual(p.tracks["audio"], [])
        self.assertEqual(p.tracks["text"], [])
        self.assertEqual(p.settings, ProjectSettings())

    def test_project_from_dict_rejects_malformed(self):
        with self.assertRaises(ValueError):
            Project.from_dict({"tracks": []})
        with self.assertRaises(ValueError):
            Project.from_dict({"tracks": {"main": "nope"}})
        with self.assertRaises(ValueError):
            Project.from_dict({"tracks": {"main": [{"start_offset": 0}]}})
        with self.assertRaises(ValueError):
            Project.from_dict([])

    def test_settings_defaults(self):
        s = ProjectSettings.from_dict({"width": "bad"})
        self.assertEqual((s.width, s.height, s.aspect_ratio), (1280, 720, "16:9"))

    def test_kind_from_type(self):
        self.assertEqual(kind_from_type("video/mp4"), "video")
        self.assertEqual(kind_from_type("image/png"), "image")
        self.assertEqual(kind_from_type("audio/mpeg"), "audio")
        self.assertEqual(kind_from_type("", "clip.MOV"), "video")
        self.assertEqual(kind_from_type("", "song.m4a"), "audio")
        self.assertIsNone(kind_from_type("application/pdf", "doc.pdf"))

    def test_track_for_kind(self):
        self.assertEqual(track_for_kind("audio"), "audio")
        self.assertEqual(track_for_kind("text"), "text")
        self.assertEqual(track_for_kind("image"), "main")
        self.assertEqual(track_for_kind("video"), "main")


if __name__ == "__main__":
    unittest.main()
