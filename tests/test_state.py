"""Unit tests for the in-memory milestone state."""

import random
import threading

import pytest

from milestone_bridge.errors import DecodeError
from milestone_bridge.state import KNOWN_WINDOWS, Event, StateStore


class TestEvent:

    def test_valid_event(self):
        event = Event(50, "1stStoryWindows")
        assert event.percentage == 50
        assert event.window_name == "1stStoryWindows"

    @pytest.mark.parametrize("percentage", [-1, 101, 255])
    def test_percentage_out_of_range(self, percentage):
        with pytest.raises(DecodeError):
            Event(percentage, "1stStoryWindows")

    def test_percentage_must_be_int(self):
        with pytest.raises(DecodeError):
            Event("50", "1stStoryWindows")
        with pytest.raises(DecodeError):
            Event(True, "1stStoryWindows")

    def test_event_is_immutable(self):
        event = Event(10, "x")
        with pytest.raises(AttributeError):
            event.percentage = 20


class TestApply:

    def test_initial_state_is_empty(self, store):
        snap = store.snapshot()
        assert snap.current_milestone == 0
        assert snap.windows_visible == ()

    def test_milestone_never_decreases(self, store):
        """Scenario A: a lower percentage for a seen window changes nothing."""
        store.apply(Event(50, "1stStoryWindows"))
        store.apply(Event(30, "1stStoryWindows"))
        assert store.latest_milestone == 50
        assert store.snapshot().windows_visible == ("1stStoryWindows",)

    def test_milestone_is_running_maximum(self, store):
        rng = random.Random(7)
        seen = []
        for _ in range(200):
            pct = rng.randint(0, 100)
            previous = store.latest_milestone
            store.apply(Event(pct, f"window-{pct % 5}"))
            seen.append(pct)
            assert store.latest_milestone >= previous
            assert store.latest_milestone == max(seen)

    def test_window_insertion_is_idempotent(self, store):
        store.apply(Event(10, "2ndStoryWindows"))
        store.apply(Event(90, "2ndStoryWindows"))
        assert store.snapshot().windows_visible == ("2ndStoryWindows",)

    def test_milestone_is_global_across_windows(self, store):
        store.apply(Event(100, "1stStoryWindows"))
        store.apply(Event(0, "2ndStoryWindows"))
        assert store.latest_milestone == 100

    def test_contains(self, store):
        store.apply(Event(40, "2ndStoryWindows"))
        assert store.contains("2ndStoryWindows")
        assert not store.contains("3rdStoryWindows")


class TestSnapshot:

    def test_snapshot_message_shape(self, store):
        store.apply(Event(50, "1stStoryWindows"))
        assert store.snapshot().to_message() == {
            "type": "snapshot",
            "currentMilestone": 50,
            "windowsVisible": ["1stStoryWindows"],
        }

    def test_snapshot_is_detached_from_later_updates(self, store):
        store.apply(Event(20, "a"))
        snap = store.snapshot()
        store.apply(Event(80, "b"))
        assert snap.current_milestone == 20
        assert snap.windows_visible == ("a",)

    def test_visibility_covers_known_windows(self, store):
        store.apply(Event(50, "1stStoryWindows"))
        store.apply(Event(40, "2ndStoryWindows"))
        store.apply(Event(10, "someOtherWindow"))
        assert store.visibility() == {
            "1stStoryWindows": True,
            "2ndStoryWindows": True,
            "3rdStoryWindows": False,
            "4thStoryWindows": False,
        }
        assert tuple(store.visibility()) == KNOWN_WINDOWS

    def test_readers_never_see_half_applied_events(self):
        """Window N is visible exactly when the milestone has reached N."""
        store = StateStore()
        errors = []

        def writer():
            for pct in range(101):
                store.apply(Event(pct, f"w{pct}"))

        def reader():
            for _ in range(2000):
                snap = store.snapshot()
                if snap.windows_visible:
                    highest = max(int(name[1:]) for name in snap.windows_visible)
                    if highest != snap.current_milestone:
                        errors.append(snap)

        threads = [threading.Thread(target=writer)] + [threading.Thread(target=reader) for _ in range(3)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert errors == []
