"""Shared fixtures: a Flask app over in-memory SQLite with mock repositories."""

import os

import pytest
from sqlalchemy.engine import URL

from application import new_application, new_flask_app
from config import DeploymentEnv, StartupConfig
from database import ConnectionDescriptor, open_database
from forms import FormDecoder
from generate_cert import generate_self_signed
from logs import new_loggers
from mocks import MockSnippetModel, MockUserModel
from sessions import bind_session_manager
from templates import new_template_cache

ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
UI_HTML = os.path.join(ROOT, "ui", "html")


@pytest.fixture
def config():
    return StartupConfig(addr="127.0.0.1:0", env=DeploymentEnv.LOCAL)


@pytest.fixture
def cloud_config():
    return StartupConfig(addr="127.0.0.1:0", env=DeploymentEnv.CLOUD)


@pytest.fixture
def loggers():
    return new_loggers()


@pytest.fixture
def memory_descriptor():
    return ConnectionDescriptor(url=URL.create("sqlite"))


@pytest.fixture
def handle(config, memory_descriptor):
    """Open, probed and schema-ready database handle; disposed after the test."""
    app = new_flask_app(config)
    with open_database(app, memory_descriptor) as handle:
        handle.ensure_schema()
        yield handle


@pytest.fixture
def make_application(handle, loggers):
    def factory(config, **overrides):
        deps = {
            "snippets": MockSnippetModel(),
            "users": MockUserModel(),
            "template_cache": new_template_cache(UI_HTML),
            "form_decoder": FormDecoder(),
            "session_manager": bind_session_manager(handle.app, handle),
        }
        deps.update(overrides)
        return new_application(handle.app, config, loggers, **deps)

    return factory


@pytest.fixture
def application(make_application, config):
    return make_application(config)


@pytest.fixture
def tls_files(tmp_path):
    return generate_self_signed(
        ["127.0.0.1", "localhost"],
        str(tmp_path / "tls" / "cert.pem"),
        str(tmp_path / "tls" / "key.pem"),
    )
