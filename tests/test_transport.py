import socketserver
import threading
import time
from unittest.mock import MagicMock

import pytest
import requests

from tradedesk.errors import TransportError
from tradedesk.transport import RetryingTransport, RetryStateMachine, TransportState


def _resp(status=200, text='{"result": "success"}'):
    resp = MagicMock()
    resp.status_code = status
    resp.encoding = "utf-8"
    resp.iter_content.return_value = [bytes([b]) for b in text.encode("utf-8")]
    resp.headers = {"Content-Type": "application/json"}
    return resp


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def session():
    return MagicMock()


@pytest.fixture
def transport(session, sleeps):
    return RetryingTransport(session, timeout=2.5, max_attempts=3, sleep=sleeps.append)


def test_state_machine_success_path():
    machine = RetryStateMachine(max_attempts=3)
    assert machine.state is TransportState.IDLE
    assert machine.begin_attempt() == 1
    machine.succeed()
    assert machine.state is TransportState.SUCCEEDED
    assert machine.done


def test_state_machine_backoff_then_exhausted():
    machine = RetryStateMachine(max_attempts=3, backoff_base=1.0)
    delays = []
    while not machine.done:
        machine.begin_attempt()
        delays.append(machine.fail())
    assert delays == [1.0, 2.0, None]
    assert machine.state is TransportState.EXHAUSTED
    assert machine.attempt == 3


def test_state_machine_rejects_invalid_transition():
    machine = RetryStateMachine()
    with pytest.raises(RuntimeError):
        machine.succeed()


def test_state_machine_requires_an_attempt():
    with pytest.raises(ValueError):
        RetryStateMachine(max_attempts=0)


def test_first_attempt_success(transport, session, sleeps):
    session.request.return_value = _resp()
    resp = transport.send("POST", "https://x/y", headers={"A": "b"}, data=b"{}")
    assert resp.status == 200
    assert resp.text == '{"result": "success"}'
    assert sleeps == []
    session.request.assert_called_once_with(
        "POST", "https://x/y", headers={"A": "b"}, data=b"{}", params=None, timeout=2.5, stream=True
    )
    session.request.return_value.close.assert_called_once()


def test_retries_connection_errors_with_backoff(transport, session, sleeps):
    session.request.side_effect = [
        requests.exceptions.ConnectionError("refused"),
        requests.exceptions.Timeout("slow"),
        _resp(),
    ]
    resp = transport.send("POST", "https://x/y", data=b"{}")
    assert resp.ok
    assert sleeps == [1.0, 2.0]
    assert session.request.call_count == 3


def test_same_body_sent_on_every_attempt(transport, session):
    session.request.side_effect = [requests.exceptions.ConnectionError(), _resp()]
    transport.send("POST", "https://x/y", data=b"signed-body")
    bodies = [c.kwargs["data"] for c in session.request.call_args_list]
    assert bodies == [b"signed-body", b"signed-body"]


def test_exhausted_raises_transport_error(transport, session, sleeps):
    session.request.side_effect = requests.exceptions.ConnectionError("down")
    with pytest.raises(TransportError) as exc:
        transport.send("POST", "https://x/y")
    assert exc.value.attempts == 3
    assert exc.value.url == "https://x/y"
    assert isinstance(exc.value.__cause__, requests.exceptions.ConnectionError)
    assert sleeps == [1.0, 2.0]


@pytest.mark.parametrize("status", [400, 429, 500, 503])
def test_http_status_is_not_retried(transport, session, sleeps, status):
    session.request.return_value = _resp(status=status, text="nope")
    resp = transport.send("POST", "https://x/y")
    assert resp.status == status
    assert not resp.ok
    assert session.request.call_count == 1
    assert sleeps == []


def test_per_call_attempt_override(transport, session, sleeps):
    session.request.side_effect = requests.exceptions.ConnectionError()
    with pytest.raises(TransportError):
        transport.send("GET", "https://x/y", max_attempts=1)
    assert session.request.call_count == 1
    assert sleeps == []


def test_default_session_disables_urllib3_retries():
    transport = RetryingTransport()
    adapter = transport.session.get_adapter("https://api.coinone.co.kr")
    assert adapter.max_retries.total == 0
    transport.close()


class _DripHandler(socketserver.BaseRequestHandler):
    """Sends headers at once, then the body one byte per ``server.drip`` seconds."""

    def handle(self):
        self.request.recv(65536)
        body = b'{"result": "success"}'
        head = b"HTTP/1.1 200 OK\r\nContent-Type: application/json\r\nContent-Length: %d\r\n\r\n" % len(body)
        try:
            self.request.sendall(head)
            for i in range(len(body)):
                self.request.sendall(body[i:i + 1])
                time.sleep(self.server.drip)
        except OSError:
            pass  # client gave up


def _direct_session():
    session = requests.Session()
    session.trust_env = False  # no proxies for the loopback server
    return session


@pytest.fixture
def drip_server():
    servers = []

    def start(drip):
        server = socketserver.ThreadingTCPServer(("127.0.0.1", 0), _DripHandler)
        server.daemon_threads = True
        server.block_on_close = False
        server.drip = drip
        threading.Thread(target=server.serve_forever, daemon=True).start()
        servers.append(server)
        host, port = server.server_address
        return f"http://{host}:{port}/"

    yield start
    for server in servers:
        server.shutdown()
        server.server_close()


def test_trickling_body_hits_attempt_deadline(drip_server):
    url = drip_server(0.2)  # full body would take ~4s
    transport = RetryingTransport(_direct_session(), timeout=0.5, max_attempts=1)
    started = time.monotonic()
    with pytest.raises(TransportError) as exc:
        transport.send("GET", url)
    elapsed = time.monotonic() - started
    transport.close()
    assert exc.value.attempts == 1
    assert isinstance(exc.value.__cause__, requests.exceptions.Timeout)
    assert elapsed < 2.0


def test_prompt_body_within_deadline(drip_server):
    url = drip_server(0.0)
    transport = RetryingTransport(_direct_session(), timeout=5.0, max_attempts=1)
    resp = transport.send("GET", url)
    transport.close()
    assert resp.status == 200
    assert resp.text == '{"result": "success"}'
