from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Mapping

from flask import Flask

from forms import FormDecoder
from sessions import SessionManager


@dataclass(frozen=True)
class Application:
    """
    Dependencies shared by every request handler.
    Read-only once assembled, so handlers use it without locking.
    """
    debug: bool
    info_log: Any
    error_log: Any
    snippets: Any
    users: Any
    template_cache: Mapping
    form_decoder: FormDecoder
    session_manager: SessionManager
    flask: Flask


def new_flask_app(config):
    app = Flask(__name__, static_folder=None, template_folder=None)
    app.config["DEBUG"] = config.debug
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False
    return app


def new_application(flask_app, config, loggers, *, snippets, users,
                    template_cache, form_decoder, session_manager):
    """ Pure composition; every dependency is already constructed. """
    return Application(
        debug=config.debug,
        info_log=loggers.info,
        error_log=loggers.error,
        snippets=snippets,
        users=users,
        template_cache=MappingProxyType(dict(template_cache)),
        form_decoder=form_decoder,
        session_manager=session_manager,
        flask=flask_app,
    )
