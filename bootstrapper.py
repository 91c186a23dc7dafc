from application import new_application, new_flask_app
from database import build_descriptor, open_database
from forms import FormDecoder
from models import SnippetModel, UserModel
from sessions import bind_session_manager
from templates import new_template_cache
from transport import serve


def run(config, loggers):
    """
    Strictly sequential startup; each step needs the previous one.
    1. Open the pool and probe the database (aborts before anything else).
    2. Create missing tables.
    3. Compile the template cache.
    4. Bind the session manager to the database.
    5. Assemble the Application and serve until the listener stops.
    The pool is disposed on every exit path.
    """
    flask_app = new_flask_app(config)
    with open_database(flask_app, build_descriptor(config)) as handle:
        loggers.info.info("Database connection pool ready")
        handle.ensure_schema()

        template_cache = new_template_cache()
        session_manager = bind_session_manager(flask_app, handle)

        application = new_application(
            flask_app,
            config,
            loggers,
            snippets=SnippetModel(handle.db),
            users=UserModel(handle.db),
            template_cache=template_cache,
            form_decoder=FormDecoder(),
            session_manager=session_manager,
        )
        serve(application, config)
