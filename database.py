from dataclasses import dataclass, field

from sqlalchemy import text
from sqlalchemy.engine import URL
from sqlalchemy.exc import SQLAlchemyError

from errors import DatabaseUnavailableError
from extensions import db
from utils import split_host_port

DRIVER = "mysql+mysqlconnector"


@dataclass(frozen=True)
class ConnectionDescriptor:
    url: URL
    connect_args: dict = field(default_factory=dict)


def build_descriptor(config):
    """
    Builds the MySQL connection descriptor from the startup config.
    1. TCP address, database name and credentials always.
    2. Temporal columns decoded into datetime objects always.
    3. Native password authentication in cloud mode only.
    """
    try:
        host, port = split_host_port(config.db_host)
    except ValueError as err:
        raise DatabaseUnavailableError(f"invalid DB_ADDR: {err}") from err
    url = URL.create(
        DRIVER,
        username=config.db_user or None,
        password=config.db_password or None,
        host=host or None,
        port=port,
        database=config.db_name or None,
        query={"charset": "utf8mb4"},
    )
    connect_args = {"raw": False}
    if config.is_cloud:
        connect_args["auth_plugin"] = "mysql_native_password"
    return ConnectionDescriptor(url=url, connect_args=connect_args)


class DatabaseHandle:
    """
    The pooled engine of one Flask app.
    Use as a context manager: the pool is disposed on every exit path.
    """

    def __init__(self, app, database, engine):
        self.app = app
        self.db = database
        self.engine = engine

    def ping(self):
        with self.engine.connect() as conn:
            conn.execute(text("SELECT 1"))

    def ensure_schema(self):
        try:
            with self.app.app_context():
                self.db.create_all()
        except SQLAlchemyError as err:
            raise DatabaseUnavailableError(f"cannot prepare schema: {err}") from err

    def close(self):
        self.engine.dispose()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False


def open_database(app, descriptor):
    """
    Creates the pool for `app` and runs the liveness probe.
    A failed probe disposes the pool and raises DatabaseUnavailableError;
    it is never retried.
    """
    app.config["SQLALCHEMY_DATABASE_URI"] = descriptor.url
    app.config["SQLALCHEMY_ENGINE_OPTIONS"] = {"connect_args": dict(descriptor.connect_args)}

    try:
        db.init_app(app)
        with app.app_context():
            engine = db.engine
    except SQLAlchemyError as err:
        raise DatabaseUnavailableError(f"cannot open database: {err}") from err

    handle = DatabaseHandle(app, db, engine)
    try:
        handle.ping()
    except SQLAlchemyError as err:
        handle.close()
        raise DatabaseUnavailableError(f"database ping failed: {err}") from err
    return handle
