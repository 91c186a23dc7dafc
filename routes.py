import traceback
from datetime import datetime

from flask import Blueprint, Response, current_app, session
from flask_login import UserMixin, current_user
from werkzeug.exceptions import HTTPException

from errors import NoRecordError
from extensions import login_manager

EXTENSION_KEY = "snippetbox"


class AuthenticatedUser(UserMixin):
    def __init__(self, user_id):
        self.id = user_id


@login_manager.user_loader
def load_user(user_id):
    application = current_app.extensions[EXTENSION_KEY]
    try:
        user_id = int(user_id)
    except (TypeError, ValueError):
        return None
    if application.users.exists(user_id):
        return AuthenticatedUser(user_id)
    return None


# ==========================================
# RESPONSE HELPERS
# ==========================================
def server_error(application, err):
    trace = "".join(traceback.format_exception(type(err), err, err.__traceback__))
    application.error_log.error(trace)
    body = trace if application.debug else "Internal Server Error"
    return Response(body, status=500, mimetype="text/plain")


def client_error(status, message):
    return Response(message, status=status, mimetype="text/plain")


def template_data(**data):
    data.setdefault("current_year", datetime.now().year)
    data.setdefault("flash", session.pop("flash", ""))
    data.setdefault("is_authenticated", current_user.is_authenticated)
    return data


def render(application, status, page, **data):
    template = application.template_cache.get(page)
    if template is None:
        return server_error(application, LookupError(f"the template {page} does not exist"))
    body = template.render(**template_data(**data))
    return Response(body, status=status, mimetype="text/html")


# ==========================================
# HANDLER TREE
# ==========================================
def routes(application):
    """
    Registers the handlers on the application's Flask app and returns
    it as the WSGI entry point.
    """
    app = application.flask
    app.extensions[EXTENSION_KEY] = application
    login_manager.init_app(app)

    web = Blueprint("web", __name__)

    @web.get("/ping")
    def ping():
        return Response("OK", mimetype="text/plain")

    @web.get("/")
    def home():
        return render(application, 200, "home.html", snippets=application.snippets.latest())

    @web.get("/snippet/view/<int:snippet_id>")
    def snippet_view(snippet_id):
        try:
            snippet = application.snippets.get(snippet_id)
        except NoRecordError:
            return client_error(404, "Not Found")
        return render(application, 200, "view.html", snippet=snippet)

    app.register_blueprint(web)

    @app.errorhandler(404)
    def not_found(err):
        return client_error(404, "Not Found")

    @app.errorhandler(Exception)
    def unhandled(err):
        if isinstance(err, HTTPException):
            return err
        return server_error(application, err)

    return app
