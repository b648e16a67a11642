import asyncio
import threading
import urllib.parse
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import pytest

from herald.controller import (
    RegistrationController,
    RegistrationPolicy,
    RegistrationState,
)
from herald.directory import ExchangeResult
from herald.record import ServerRecord
from herald.scheduler import ScheduleHandle

OK = ExchangeResult(True, 200)
FAIL = ExchangeResult(False, 500, "HTTP 500: Internal Server Error")


class FakeDirectory:
    """In-memory DirectoryTransport that replays canned results.

    Set ``gate`` to an asyncio.Event to hold every exchange open until it
    is set.
    """

    def __init__(self, *results):
        self.results = list(results)
        self.sent = []
        self.gate = None
        self.inflight = 0
        self.max_inflight = 0

    @property
    def kinds(self):
        return [kind.value for kind, _ in self.sent]

    async def send(self, kind, fields):
        self.sent.append((kind, dict(fields)))
        self.inflight += 1
        self.max_inflight = max(self.max_inflight, self.inflight)
        try:
            if self.gate is not None:
                await self.gate.wait()
            await asyncio.sleep(0)
        finally:
            self.inflight -= 1
        outcome = self.results.pop(0) if self.results else OK
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


class FakeScheduler:
    """Records repeating schedules; ticks only when told to."""

    def __init__(self):
        self.scheduled = []

    def schedule_repeating(self, delay, interval, callback):
        handle = ScheduleHandle(interval, callback)
        self.scheduled.append((handle, delay, callback))
        return handle

    def cancel_all(self, handles):
        for handle in handles:
            handle.cancel()

    @property
    def active(self):
        return [h for h, _, _ in self.scheduled if not h.cancelled]

    def tick(self):
        tasks = []
        for handle, _, callback in self.scheduled:
            if not handle.cancelled:
                tasks.append(callback())
        return tasks


class Recorder:
    """Collects controller transitions and events."""

    def __init__(self, controller):
        self.transitions = []
        self.events = []
        controller.add_transition_listener(self.transitions.append)
        controller.add_event_listener(self.events.append)

    @property
    def state(self):
        if not self.transitions:
            return RegistrationState.UNREGISTERED
        return self.transitions[-1].current

    @property
    def outcomes(self):
        return [(e.operation.value, e.outcome.value) for e in self.events]


@pytest.fixture
def record():
    return ServerRecord(uuid="u1", name="Foo", port=7777, player_count=0, player_capacity=10)


@pytest.fixture
def scheduler():
    return FakeScheduler()


@pytest.fixture
def make_controller(record, scheduler):
    def _make(directory, **policy):
        controller = RegistrationController(
            record, "secret", directory, scheduler, RegistrationPolicy(**policy),
        )
        return controller, Recorder(controller)
    return _make


async def settle():
    """Let pending callbacks on the loop run."""
    for _ in range(3):
        await asyncio.sleep(0)


# ---------------------------------------------------------------------------
# Fake directory HTTP server
# ---------------------------------------------------------------------------

class RecordingDirectory:
    def __init__(self):
        self.requests = []
        self.statuses = {}
        self.url = ""


def _make_handler(directory: RecordingDirectory):
    """Create a handler class bound to the given recording directory."""

    class DirectoryHTTPHandler(BaseHTTPRequestHandler):

        def log_message(self, format, *args):
            pass

        def do_POST(self):
            length = int(self.headers.get("Content-Length", 0))
            body = self.rfile.read(length).decode()
            parsed = urllib.parse.parse_qs(body, keep_blank_values=True)
            fields = {k: v[0] for k, v in parsed.items()}
            directory.requests.append(
                (self.path, fields, self.headers.get("Content-Type"))
            )
            status = directory.statuses.get(self.path, 200)
            payload = b"OK" if status == 200 else b"rejected"
            self.send_response(status)
            self.send_header("Content-Type", "text/plain")
            self.send_header("Content-Length", str(len(payload)))
            self.end_headers()
            self.wfile.write(payload)

    return DirectoryHTTPHandler


@pytest.fixture
def directory_server():
    directory = RecordingDirectory()
    server = ThreadingHTTPServer(("127.0.0.1", 0), _make_handler(directory))
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    directory.url = f"http://127.0.0.1:{server.server_address[1]}"
    yield directory
    server.shutdown()
    server.server_close()
