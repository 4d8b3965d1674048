import unittest

from reelcut.events import EVENT_ERROR, EVENT_IMPORT, Event, EventBus


class TestEvents(unittest.TestCase):
    def test_unknown_type_rejected(self):
        with self.assertRaises(ValueError):
            Event(type="bogus")

    def test_to_dict_drops_empty_fields(self):
        e = Event(type=EVENT_IMPORT, filename="a.mp4", file_count=1)
        self.assertEqual(e.to_dict(), {"type": "import", "filename": "a.mp4", "file_count": 1})

    def test_bus_fans_out_and_unsubscribes(self):
        bus = EventBus()
        seen_a, seen_b = [], []
        unsub = bus.subscribe(seen_a.append)
        bus.subscribe(seen_b.append)

        bus.emit(Event(type=EVENT_ERROR, error_message="boom"))
        unsub()
        bus.emit(Event(type=EVENT_ERROR, error_message="again"))

        self.assertEqual([e.error_message for e in seen_a], ["boom"])
        self.assertEqual([e.error_message for e in seen_b], ["boom", "again"])

    def test_failing_listener_does_not_reach_emitter(self):
        bus = EventBus()
        seen = []

        def broken(_event):
            raise RuntimeError("listener down")

        bus.subscribe(broken)
        bus.subscribe(seen.append)
        with self.assertLogs("reelcut", level="ERROR"):
            bus.emit(Event(type=EVENT_IMPORT))
        self.assertEqual(len(seen), 1)


if __name__ == "__main__":
    unittest.main()
