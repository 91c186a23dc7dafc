import os

from jinja2 import Environment, FileSystemLoader, TemplateError, select_autoescape

from errors import TemplateCacheError
from utils import human_date

UI_HTML_DIR = os.path.join(".", "ui", "html")


def new_template_environment(directory):
    env = Environment(
        loader=FileSystemLoader(directory),
        autoescape=select_autoescape(["html"]),
    )
    env.filters["human_date"] = human_date
    return env


def _listing(directory, subdir):
    path = os.path.join(directory, subdir)
    if not os.path.isdir(path):
        return []
    return sorted(name for name in os.listdir(path) if name.endswith(".html"))


def new_template_cache(directory=UI_HTML_DIR):
    """
    Compiles every page under `directory`/pages together with the base
    layout and the partials, keyed by page file name ('home.html').
    Raises TemplateCacheError on a missing directory, no pages, or any
    template that fails to compile.
    """
    if not os.path.isdir(directory):
        raise TemplateCacheError(f"template directory not found: {directory}")

    pages = _listing(directory, "pages")
    if not pages:
        raise TemplateCacheError(f"no page templates in {directory}")

    env = new_template_environment(directory)
    shared = ["base.html"] if os.path.isfile(os.path.join(directory, "base.html")) else []
    shared += ["partials/" + name for name in _listing(directory, "partials")]

    cache = {}
    try:
        for name in shared:
            env.get_template(name)
        for name in pages:
            cache[name] = env.get_template("pages/" + name)
    except TemplateError as err:
        raise TemplateCacheError(f"cannot compile template: {err}") from err
    return cache
