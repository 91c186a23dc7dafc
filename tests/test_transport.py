"""Listener selection, TLS policy and per-connection timeouts."""

import http.client
import socket
import ssl
import threading
import time
from http.server import BaseHTTPRequestHandler
from unittest import mock

import pytest
from werkzeug.serving import WSGIRequestHandler

import transport
from config import DeploymentEnv, StartupConfig, load_config
from errors import ServerClosedError, TLSPolicyError
from transport import (
    CURVE_PREFERENCES,
    SERVER_TIMEOUTS,
    ListenerServer,
    ServerTimeouts,
    TimeoutRequestHandler,
    Transport,
    apply_curve_preferences,
    new_server,
    new_tls_context,
    serve,
)

HAS_GROUPS = hasattr(ssl.SSLContext, "set_groups")
needs_groups = pytest.mark.skipif(not HAS_GROUPS, reason="ssl.SSLContext.set_groups unavailable")


class FakeServer:
    def __init__(self, calls, host, port, app, **options):
        calls.append("bind")
        self.host = host
        self.port = port
        self.app = app
        self.options = options

    def serve_forever(self):
        return None


@pytest.fixture
def bound():
    servers = []
    calls = []

    def factory(host, port, app, **options):
        server = FakeServer(calls, host, port, app, **options)
        servers.append(server)
        return server

    factory.servers = servers
    factory.calls = calls
    return factory


@pytest.fixture
def start():
    """Runs real listeners in background threads; shuts them down afterwards."""
    started = []

    def run(server):
        thread = threading.Thread(target=server.serve_forever, daemon=True)
        thread.start()
        started.append((server, thread))
        return server.socket.getsockname()[1]

    yield run
    for server, thread in started:
        server.shutdown()
        thread.join(timeout=5)


@pytest.fixture
def quick_timeouts(monkeypatch):
    timeouts = ServerTimeouts(idle=1.0, read=0.3, write=2.0)
    monkeypatch.setattr(TimeoutRequestHandler, "timeouts", timeouts)
    monkeypatch.setattr(TimeoutRequestHandler, "timeout", timeouts.read)
    return timeouts


def _handshake(port, curve):
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
    context.check_hostname = False
    context.verify_mode = ssl.CERT_NONE
    context.set_ecdh_curve(curve)
    with socket.create_connection(("127.0.0.1", port), timeout=5) as sock:
        with context.wrap_socket(sock) as tls:
            return tls.version()


def _get_ping(port):
    conn = http.client.HTTPConnection("127.0.0.1", port, timeout=5)
    try:
        conn.request("GET", "/ping")
        response = conn.getresponse()
        return response.status, response.read()
    finally:
        conn.close()


def _plain_tls_context(tls_files):
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    context.load_cert_chain(*tls_files)
    return context


def test_transport_for_environment():
    assert Transport.for_env(DeploymentEnv.CLOUD) is Transport.PLAINTEXT
    assert Transport.for_env(DeploymentEnv.LOCAL) is Transport.TLS


def test_fixed_policy_constants():
    assert set(CURVE_PREFERENCES) == {"X25519", "P-256"}
    assert SERVER_TIMEOUTS.idle == 60
    assert SERVER_TIMEOUTS.read == 5
    assert SERVER_TIMEOUTS.write == 10
    assert TimeoutRequestHandler.timeout == SERVER_TIMEOUTS.read


def test_curve_list_applied_when_groups_supported():
    context = mock.Mock(spec=["set_groups"])
    apply_curve_preferences(context)
    context.set_groups.assert_called_once_with("X25519:P-256")


def test_curves_never_narrowed_without_group_support():
    context = mock.Mock(spec=["set_ecdh_curve"])
    with pytest.raises(TLSPolicyError, match="X25519, P-256"):
        apply_curve_preferences(context)
    context.set_ecdh_curve.assert_not_called()


def test_cloud_serves_plaintext_without_touching_certificates(application, cloud_config, bound, monkeypatch):
    load_tls = mock.Mock(side_effect=AssertionError("certificate files read in cloud mode"))
    monkeypatch.setattr(transport, "new_tls_context", load_tls)

    with pytest.raises(ServerClosedError):
        serve(application, cloud_config, server_factory=bound, cert_file="/nonexistent/cert.pem")

    load_tls.assert_not_called()
    (server,) = bound.servers
    assert server.options["ssl_context"] is None
    assert server.options["request_handler"] is TimeoutRequestHandler
    assert (server.host, server.port) == ("127.0.0.1", 0)
    assert server.app is application.flask


@pytest.mark.parametrize("marker", [None, "", "local", "staging", "CLOUD"])
def test_non_cloud_loads_certificates_before_binding(application, bound, monkeypatch, marker):
    environ = {} if marker is None else {"APP_ENV": marker}
    config = load_config(["-addr", "127.0.0.1:0"], environ=environ)
    context = mock.Mock(name="ssl_context")

    def load_tls(cert_file, key_file):
        bound.calls.append("load_tls")
        return context

    monkeypatch.setattr(transport, "new_tls_context", load_tls)

    with pytest.raises(ServerClosedError):
        serve(application, config, server_factory=bound)

    assert bound.calls == ["load_tls", "bind"]
    (server,) = bound.servers
    assert server.options["ssl_context"] is context
    assert server.options["request_handler"] is TimeoutRequestHandler


def test_missing_certificate_fails_before_binding(application, config, bound, tmp_path):
    with pytest.raises(OSError):
        serve(
            application,
            config,
            server_factory=bound,
            cert_file=str(tmp_path / "cert.pem"),
            key_file=str(tmp_path / "key.pem"),
        )
    assert bound.calls == []


@needs_groups
def test_tls_context_from_generated_files(tls_files):
    context = new_tls_context(*tls_files)
    assert isinstance(context, ssl.SSLContext)
    assert context.minimum_version == ssl.TLSVersion.TLSv1_2


@pytest.mark.skipif(HAS_GROUPS, reason="interpreter can restrict groups")
def test_tls_context_refused_when_curves_cannot_be_restricted(tls_files):
    with pytest.raises(TLSPolicyError):
        new_tls_context(*tls_files)


def test_server_gets_application_loggers(application, cloud_config, bound):
    server = new_server(application, cloud_config, server_factory=bound)
    assert server.info_log is application.info_log
    assert server.error_log is application.error_log


def test_default_listen_address_binds_all_interfaces(application, bound):
    new_server(application, StartupConfig(addr=":8080"), server_factory=bound)
    (server,) = bound.servers
    assert (server.host, server.port) == ("0.0.0.0", 8080)


def test_real_listener_defaults(application, cloud_config, start):
    server = new_server(application, cloud_config)
    assert isinstance(server, ListenerServer)
    assert server.multithread is True
    assert server.ssl_context is None
    assert _get_ping(start(server)) == (200, b"OK")


def test_busy_port_raises_os_error(application):
    with socket.create_server(("127.0.0.1", 0)) as taken:
        port = taken.getsockname()[1]
        config = StartupConfig(addr=f"127.0.0.1:{port}", env=DeploymentEnv.CLOUD)
        with pytest.raises(OSError):
            new_server(application, config)


# ==========================================
# TIMEOUTS
# ==========================================
def test_client_stalled_in_headers_dropped_after_read_timeout(
    application, cloud_config, quick_timeouts, start, caplog
):
    port = start(new_server(application, cloud_config))
    application.error_log.addHandler(caplog.handler)
    try:
        with socket.create_connection(("127.0.0.1", port), timeout=5) as stalled:
            stalled.sendall(b"GET /ping HTTP/1.1\r\nHost: localhost\r\n")
            began = time.monotonic()

            assert _get_ping(port) == (200, b"OK")
            assert stalled.recv(1024) == b""
            elapsed = time.monotonic() - began
    finally:
        application.error_log.removeHandler(caplog.handler)

    assert elapsed < 3
    assert "Request timed out" in caplog.text


def test_connection_closed_after_response(application, cloud_config, start):
    port = start(new_server(application, cloud_config))
    conn = http.client.HTTPConnection("127.0.0.1", port, timeout=5)
    try:
        conn.request("GET", "/ping")
        response = conn.getresponse()
        assert response.read() == b"OK"
        assert response.getheader("Connection") == "close"
    finally:
        conn.close()


def test_timeouts_follow_request_phases(monkeypatch):
    seen = []
    handler = TimeoutRequestHandler.__new__(TimeoutRequestHandler)
    handler.connection = mock.Mock(spec=["settimeout"])
    handler.connection.settimeout.side_effect = seen.append
    handler.requests_served = 0

    def one_request(self):
        if self.parse_request():
            self.run_wsgi()

    monkeypatch.setattr(BaseHTTPRequestHandler, "handle_one_request", one_request)
    monkeypatch.setattr(BaseHTTPRequestHandler, "parse_request", lambda self: True)
    monkeypatch.setattr(WSGIRequestHandler, "run_wsgi", lambda self: None)

    handler.handle_one_request()
    handler.handle_one_request()

    read, write, idle = SERVER_TIMEOUTS.read, SERVER_TIMEOUTS.write, SERVER_TIMEOUTS.idle
    assert seen == [read, write, idle, read, write]
    assert handler.requests_served == 2


# ==========================================
# TLS HANDSHAKES
# ==========================================
def test_silent_client_does_not_block_other_handshakes(application, config, tls_files, start):
    port = start(new_server(application, config, _plain_tls_context(tls_files)))

    with socket.create_connection(("127.0.0.1", port), timeout=5):
        assert _handshake(port, "prime256v1") in {"TLSv1.2", "TLSv1.3"}


def test_silent_tls_client_dropped_after_read_timeout(application, config, tls_files, quick_timeouts, start):
    port = start(new_server(application, config, _plain_tls_context(tls_files)))

    with socket.create_connection(("127.0.0.1", port), timeout=5) as silent:
        began = time.monotonic()
        assert silent.recv(1024) == b""
        assert time.monotonic() - began < 3


@pytest.fixture
def tls_server(application, config, tls_files, start):
    return start(new_server(application, config, new_tls_context(*tls_files)))


@needs_groups
@pytest.mark.parametrize("curve", ["prime256v1", "X25519"])
def test_allowed_curve_clients_complete_handshake(tls_server, curve):
    assert _handshake(tls_server, curve) in {"TLSv1.2", "TLSv1.3"}


@needs_groups
def test_client_without_allowed_curve_is_rejected(tls_server):
    with pytest.raises((ssl.SSLError, ConnectionResetError)):
        _handshake(tls_server, "secp384r1")


@needs_groups
def test_server_still_serves_after_rejected_handshake(tls_server):
    with pytest.raises((ssl.SSLError, ConnectionResetError)):
        _handshake(tls_server, "secp384r1")
    assert _handshake(tls_server, "prime256v1")
