import argparse
import enum
import os
from dataclasses import dataclass

from utils import split_host_port

CLOUD_MARKER = "cloud"
DEFAULT_ADDR = ":8080"

TRUE_VALUES = {"1", "t", "T", "true", "TRUE", "True"}
FALSE_VALUES = {"0", "f", "F", "false", "FALSE", "False"}


class DeploymentEnv(enum.Enum):
    LOCAL = "local"
    CLOUD = "cloud"

    @classmethod
    def from_marker(cls, value):
        """ Only the exact cloud marker opts out of local (TLS) mode. """
        return cls.CLOUD if value == CLOUD_MARKER else cls.LOCAL


@dataclass(frozen=True)
class StartupConfig:
    """
    Process-wide startup settings.
    Built once from flags and environment, never mutated afterwards.
    """
    # LISTENER
    addr: str = DEFAULT_ADDR
    debug: bool = False
    env: DeploymentEnv = DeploymentEnv.LOCAL

    # PERSISTENCE
    # Credentials are passed through unvalidated; a missing value
    # surfaces as a connection failure at the liveness probe.
    db_user: str = ""
    db_password: str = ""
    db_host: str = ""
    db_name: str = ""

    @property
    def is_cloud(self):
        return self.env is DeploymentEnv.CLOUD


def listen_address(value):
    """ argparse type for -addr: the port, when given, must be numeric. """
    try:
        split_host_port(value)
    except ValueError as err:
        raise argparse.ArgumentTypeError(str(err)) from err
    return value


def flag_bool(value):
    """ Boolean flag value, spelled as -debug, -debug=true or -debug=0. """
    if value in TRUE_VALUES:
        return True
    if value in FALSE_VALUES:
        return False
    raise argparse.ArgumentTypeError(f"invalid boolean value {value!r}")


def build_parser():
    parser = argparse.ArgumentParser(prog="snippetbox", description="snippetbox web server")
    parser.add_argument("-addr", "--addr", default=DEFAULT_ADDR, type=listen_address, help="HTTP network address")
    parser.add_argument(
        "-debug", "--debug", nargs="?", const=True, default=False, type=flag_bool, help="Enable debug mode"
    )
    return parser


def load_config(argv=None, environ=None):
    """
    Resolves the StartupConfig.
    Malformed flags terminate the process (argparse exits with status 2).
    """
    args = build_parser().parse_args(argv)
    environ = os.environ if environ is None else environ

    return StartupConfig(
        addr=args.addr,
        debug=args.debug,
        env=DeploymentEnv.from_marker(environ.get("APP_ENV")),
        db_user=environ.get("DB_USER", ""),
        db_password=environ.get("DB_PWD", ""),
        db_host=environ.get("DB_ADDR", ""),
        db_name=environ.get("DB_NAME", ""),
    )
