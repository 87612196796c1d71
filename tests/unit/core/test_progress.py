"""Tests for ProgressTracker windows."""

from __future__ import annotations

from minerstack.progress import SETUP_STATUS_EVENT, ProgressTracker
from tests.helpers.recorders import RecordingObserver


class TestProgressTracker:
    """Tests for ProgressTracker."""

    def test_maps_steps_into_windows(self) -> None:
        observer = RecordingObserver()
        tracker = ProgressTracker(observer)

        tracker.set_max(40)
        tracker.update("waiting-for-wallet", None, 50)
        tracker.set_max(75)
        tracker.update("preparing-for-initial-sync", {"percent": 10}, 100)

        assert observer.progress_values == [0.2, 0.75]
        assert observer.events[1].title_params == {"percent": 10}
        assert observer.events[0].event_type == SETUP_STATUS_EVENT

    def test_progress_never_decreases(self) -> None:
        """A smaller step or a regressive window does not move progress backwards."""
        observer = RecordingObserver()
        tracker = ProgressTracker(observer)

        tracker.set_max(50)
        tracker.update("a", None, 80)
        tracker.update("a", None, 10)
        tracker.set_max(30)
        tracker.update("b", None, 0)

        values = observer.progress_values
        assert values == sorted(values)
        assert tracker.last_progress == 0.4

    def test_observer_failure_does_not_propagate(self) -> None:
        class Exploding:
            def emit(self, event) -> None:
                raise RuntimeError("ui gone")

        tracker = ProgressTracker(Exploding())
        tracker.set_max(10)
        tracker.update("starting-up", None, 100)

        assert tracker.last_progress == 0.1
