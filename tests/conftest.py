import random

import pytest

from trafficflow.layout_engine import force_layout


class FakeHandle:
    """Stands in for a layout worker: messages are queued by the test and drained by poll()."""

    def __init__(self, generation):
        self.generation = generation
        self.inbox = []
        self.snapshot = None
        self.alive = True
        self.terminated = False

    def start(self, snapshot):
        self.snapshot = snapshot

    def poll(self):
        messages, self.inbox = self.inbox, []
        return messages

    def is_alive(self):
        return self.alive and not self.terminated

    def terminate(self):
        self.terminated = True


class SyncHandle(FakeHandle):
    """Runs the real force layout inline on start() and queues its messages."""

    def start(self, snapshot):
        super().start(snapshot)

        def _progress(fraction):
            self.inbox.append({"generation": self.generation, "progress": fraction})

        nodes = force_layout(snapshot["nodes"], snapshot["links"], iterations=50, progress=_progress, seed=1)
        self.inbox.append({"generation": self.generation, "nodes": nodes})


class HandleFactory:
    def __init__(self, handle_cls=FakeHandle):
        self.handle_cls = handle_cls
        self.handles = []

    def __call__(self, generation):
        handle = self.handle_cls(generation)
        self.handles.append(handle)
        return handle

    @property
    def last(self):
        return self.handles[-1]


class FakeClock:
    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def triangle_records():
    return [
        {"SourceIP": "A", "DestinationIP": "B"},
        {"SourceIP": "B", "DestinationIP": "C"},
        {"SourceIP": "A", "DestinationIP": "C"},
    ]


@pytest.fixture
def rng():
    return random.Random(42)


@pytest.fixture
def factory():
    return HandleFactory()


@pytest.fixture
def clock():
    return FakeClock()
