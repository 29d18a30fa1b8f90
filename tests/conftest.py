"""Shared test fixtures for vmlcompose tests."""

import pytest

from vmlcompose.clock import ClockRegistry, ManualFrameSource


@pytest.fixture
def frame_source():
    """Frame source that only fires when a test steps it."""
    return ManualFrameSource()


@pytest.fixture
def registry(frame_source):
    """Clock registry on the manual frame source.

    Shared across test_player.py, test_reflect.py and test_loader.py.
    """
    return ClockRegistry(frame_source)
