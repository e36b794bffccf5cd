import threading
import time

import pytest

from existinfra.config import Settings, set_settings
from existinfra.plan import Context, Resource, RunError, State


class FakeRunner:
    """Scripted runner: maps commands to outputs, exceptions or callables."""

    def __init__(self, responses=None, default=""):
        self.responses = dict(responses or {})
        self.default = default
        self.commands = []
        self.lock = threading.Lock()

    def run_command(self, ctx, command, options=None):
        ctx.check()
        with self.lock:
            self.commands.append(command)
        response = self.responses.get(command, self.default)
        if callable(response) and not isinstance(response, Exception):
            response = response(command)
        if isinstance(response, Exception):
            raise response
        return response


class FileRunner:
    """Answers ``cat a 2>/dev/null || cat b 2>/dev/null`` from a dict of files."""

    def __init__(self, files):
        self.files = files
        self.commands = []

    def run_command(self, ctx, command, options=None):
        self.commands.append(command)
        for part in command.split(" || "):
            path = part.replace("cat ", "", 1).replace(" 2>/dev/null", "").strip()
            if path in self.files:
                return self.files[path]
        raise RunError(1, "", command=command)


class RecordingResource(Resource):
    """Resource logging its lifecycle into a shared list of events."""

    kind = "recording"

    def __init__(self, events, label, fail=False, changed=True, undo_fail=False, query_fail=False,
                 barrier=None, delay=0.0):
        self.events = events
        self.label = label
        self.fail = fail
        self.changed = changed
        self.undo_fail = undo_fail
        self.query_fail = query_fail
        self.barrier = barrier
        self.delay = delay
        self.diffs = []

    def state_fields(self):
        return {"label": self.label}

    def query_state(self, ctx, runner):
        if self.query_fail:
            raise RuntimeError(f"{self.label} query failed")
        return self.state()

    def apply(self, ctx, runner, diff):
        self.events.append(("start", self.label))
        self.diffs.append(diff)
        if self.barrier is not None:
            self.barrier.wait()
        if self.delay:
            time.sleep(self.delay)
        if self.fail:
            self.events.append(("fail", self.label))
            raise RuntimeError(f"{self.label} failed")
        self.events.append(("finish", self.label))
        return self.changed

    def undo(self, ctx, runner, current=State()):
        self.events.append(("undo", self.label))
        if self.undo_fail:
            raise RuntimeError(f"{self.label} undo failed")


@pytest.fixture
def ctx():
    return Context.background()


@pytest.fixture
def fake_runner():
    return FakeRunner()


@pytest.fixture
def events():
    return []


@pytest.fixture(autouse=True)
def default_settings(monkeypatch):
    for name in ("EXISTINFRA_MAX_WORKERS", "EXISTINFRA_ROLLBACK", "EXISTINFRA_API_KEY", "EXISTINFRA_SSH_USER"):
        monkeypatch.delenv(name, raising=False)
    settings = Settings()
    set_settings(settings)
    yield settings
    set_settings(None)
