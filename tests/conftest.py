from collections import deque

import pytest


class ScriptedRng:
    """
    Stand-in for numpy.random.Generator that replays fixed draws.

    ``angles`` feed ``uniform`` (walker spawn angles), ``steps`` are (dx, dy)
    pairs that feed two consecutive ``integers`` calls.
    """

    def __init__(self, angles=(), steps=()):
        self.angles = deque(angles)
        self.ints = deque(v for step in steps for v in step)

    def uniform(self, low, high):
        value = self.angles.popleft()
        assert low <= value < high
        return value

    def integers(self, low, high):
        value = self.ints.popleft()
        assert low <= value < high
        return value


@pytest.fixture
def scripted_rng():
    return ScriptedRng
