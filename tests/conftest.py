"""Shared test helpers."""

import pytest

from kgraph.models import Parsed
from kgraph.provider.base import Provider
from kgraph.provider.session import RunContext


class FakeProvider(Provider):
    """In-memory provider. Each hook may return a value or raise."""

    def __init__(self, embed=None, generate=None, structured=None):
        self._embed = embed or (lambda text: [1.0, float(len(text) % 7), 0.5])
        self._generate = generate or (lambda prompt, system=None: "hypothetical passage")
        self._structured = structured or (lambda prompt, schema: Parsed({}))
        self.calls: list[str] = []

    async def embed(self, text):
        self.calls.append("embed")
        return self._embed(text)

    async def generate(self, prompt, system=None, **options):
        self.calls.append("generate")
        return self._generate(prompt, system)

    async def generate_structured(self, prompt, schema):
        self.calls.append("generate_structured")
        return self._structured(prompt, schema)


class SleepRecorder:
    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay):
        self.delays.append(delay)


@pytest.fixture
def sleeps():
    return SleepRecorder()


@pytest.fixture
def run_ctx(sleeps):
    return RunContext(max_retries=3, initial_delay=0.0, jitter=0.0, sleep=sleeps, seed=0)
