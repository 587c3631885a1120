"""Tests for core/progress.py weighted progress."""

import asyncio

import pytest

from core.progress import ProgressTracker


def _drain(channel):
    states = []
    while not channel.empty():
        states.append(channel.get_nowait())
    return states


class TestProgressTracker:
    def test_phase_weights_accumulate(self):
        tracker = ProgressTracker("job-1")
        tracker.start_phase("plugin_discovery", "Discovering")
        tracker.complete_phase("plugin_discovery")
        assert tracker.progress == 5

        tracker.set_plugins(["github", "reddit"])
        tracker.start_phase("data_collection", "Collecting")
        tracker.update_plugin("github", 100)
        # One of two plugins done: half of the 40 point collection weight
        assert tracker.progress == 25

        tracker.update_plugin("reddit", 100)
        tracker.complete_phase("data_collection")
        tracker.complete_phase("analysis")
        assert tracker.progress == 85

        tracker.skip_phase("export")
        assert tracker.progress == 100

    def test_plugin_progress_never_moves_backwards(self):
        tracker = ProgressTracker("job-1")
        tracker.set_plugins(["github"])
        tracker.update_plugin("github", 80)
        tracker.update_plugin("github", 10)
        assert tracker.get_state().plugin_progress["github"] == 80

    def test_published_progress_is_monotonic(self):
        channel = asyncio.Queue()
        tracker = ProgressTracker("job-1", channel=channel)
        tracker.start_phase("plugin_discovery", "Discovering")
        tracker.complete_phase("plugin_discovery")
        tracker.set_plugins(["a", "b"])
        tracker.update_plugin("a", 50)
        tracker.update_phase("data_collection", 0)
        tracker.update_plugin("b", 100)
        tracker.complete("done")

        values = [state.progress for state in _drain(channel)]
        assert values == sorted(values)
        assert values[-1] == 100

    def test_fail_marks_current_phase(self):
        tracker = ProgressTracker("job-1")
        tracker.start_phase("analysis", "Analyzing")
        tracker.fail("AI analysis failed")
        state = tracker.get_state()
        assert state.status == "failed"
        assert state.phases["analysis"]["status"] == "failed"
        assert state.to_dict()["error"] == "AI analysis failed"

    def test_full_channel_drops_updates(self):
        channel = asyncio.Queue(maxsize=1)
        tracker = ProgressTracker("job-1", channel=channel)
        tracker.start_phase("plugin_discovery", "one")
        tracker.complete_phase("plugin_discovery", "two")
        assert channel.qsize() == 1
        assert tracker.progress == 5


@pytest.mark.parametrize("percent", [-20, 250])
def test_phase_percent_clamped(percent):
    tracker = ProgressTracker("job-1")
    tracker.update_phase("analysis", percent)
    assert 0 <= tracker.progress <= 40
