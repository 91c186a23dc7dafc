"""
Listener startup: plaintext behind a cloud load balancer, TLS otherwise.

Both listeners are werkzeug threaded WSGI servers with the same fixed
per-connection timeouts. TLS is the default; plaintext is selected only
by the explicit cloud deployment marker.
"""
import enum
import os
import socket
import ssl
from typing import NamedTuple

from werkzeug.serving import LISTEN_QUEUE, ThreadedWSGIServer, WSGIRequestHandler

from config import DeploymentEnv
from errors import ServerClosedError, TLSPolicyError
from routes import routes
from utils import split_host_port

CERT_FILE = os.path.join(".", "tls", "cert.pem")
KEY_FILE = os.path.join(".", "tls", "key.pem")

# Only curves with optimized implementations are offered.
CURVE_PREFERENCES = ("X25519", "P-256")


class ServerTimeouts(NamedTuple):
    idle: float
    read: float
    write: float


SERVER_TIMEOUTS = ServerTimeouts(idle=60.0, read=5.0, write=10.0)


class Transport(enum.Enum):
    PLAINTEXT = "plaintext"
    TLS = "tls"

    @classmethod
    def for_env(cls, env):
        return cls.PLAINTEXT if env is DeploymentEnv.CLOUD else cls.TLS


class TimeoutRequestHandler(WSGIRequestHandler):
    """
    Applies the read, write and idle timeouts to each connection socket:
    read while the TLS handshake, request line and headers arrive, write
    while the app runs and the response goes out, idle between
    kept-alive requests.
    """
    timeouts = SERVER_TIMEOUTS
    timeout = SERVER_TIMEOUTS.read

    def setup(self):
        super().setup()
        self.requests_served = 0

    def handle_one_request(self):
        if self.requests_served:
            self.connection.settimeout(self.timeouts.idle)
        elif isinstance(self.connection, ssl.SSLSocket):
            # Failures surface in WSGIRequestHandler.handle, which logs
            # TLS errors and drops timed-out connections.
            self.connection.do_handshake()
        super().handle_one_request()
        self.requests_served += 1

    def parse_request(self):
        self.connection.settimeout(self.timeouts.read)
        return super().parse_request()

    def run_wsgi(self):
        self.connection.settimeout(self.timeouts.write)
        super().run_wsgi()

    def log(self, type, message, *args):
        line = f"{self.address_string()} - {message % args if args else message}"
        if type == "error":
            self.server.error_log.error(line)
        else:
            self.server.info_log.debug(line)


class ListenerServer(ThreadedWSGIServer):
    """
    Threaded WSGI server on a socket bound here, so bind failures raise
    OSError to the caller.

    With a TLS context the listening socket stays plain. Each accepted
    connection is wrapped without handshaking; the handshake runs in the
    connection's handler thread under the read timeout, so a silent
    client never holds up accept().
    """

    def __init__(self, host, port, app, request_handler=TimeoutRequestHandler, ssl_context=None):
        family = socket.AF_INET6 if ":" in host else socket.AF_INET
        listener = socket.create_server((host, port), family=family, backlog=LISTEN_QUEUE)
        try:
            super().__init__(host, listener.getsockname()[1], app, request_handler, fd=listener.fileno())
        finally:
            # werkzeug keeps its own duplicate of the descriptor
            listener.close()
        self.ssl_context = ssl_context

    def get_request(self):
        connection, address = self.socket.accept()
        if self.ssl_context is not None:
            connection = self.ssl_context.wrap_socket(
                connection, server_side=True, do_handshake_on_connect=False
            )
        return connection, address


def apply_curve_preferences(context, curves=CURVE_PREFERENCES):
    """
    Restricts key exchange to exactly `curves`.
    Raises TLSPolicyError when the interpreter's ssl module cannot set a
    group list; a single pinned curve would not honour the allow-list.
    """
    if not hasattr(context, "set_groups"):
        raise TLSPolicyError(
            f"ssl.SSLContext.set_groups is unavailable; cannot restrict key exchange to {', '.join(curves)}"
        )
    context.set_groups(":".join(curves))
    return context


def new_tls_context(cert_file=CERT_FILE, key_file=KEY_FILE):
    """ Raises OSError / ssl.SSLError when the certificate or key is unusable. """
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    context.minimum_version = ssl.TLSVersion.TLSv1_2
    context.load_cert_chain(cert_file, key_file)
    apply_curve_preferences(context)
    return context


def new_server(application, config, ssl_context=None, server_factory=ListenerServer):
    host, port = split_host_port(config.addr)
    server = server_factory(
        host or "0.0.0.0",
        port or 0,
        routes(application),
        request_handler=TimeoutRequestHandler,
        ssl_context=ssl_context,
    )
    server.info_log = application.info_log
    server.error_log = application.error_log
    return server


def serve(application, config, server_factory=ListenerServer, cert_file=CERT_FILE, key_file=KEY_FILE):
    """
    Starts the listener chosen by the deployment environment and blocks.
    Certificate material is loaded before binding and only for TLS.
    Any return from serving raises ServerClosedError.
    """
    transport = Transport.for_env(config.env)
    ssl_context = None
    if transport is Transport.TLS:
        ssl_context = new_tls_context(cert_file, key_file)

    server = new_server(application, config, ssl_context, server_factory)
    application.info_log.info("Starting %s server on %s", transport.value, config.addr)
    server.serve_forever()
    raise ServerClosedError(f"server on {config.addr} stopped")
