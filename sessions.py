"""
Server-side sessions persisted in the application database.

The browser only holds an opaque token. Session state lives in the
`sessions` table with an absolute deadline fixed at creation time.
"""
import secrets
from dataclasses import dataclass, field
from datetime import timedelta

from flask.json.tag import TaggedJSONSerializer
from flask.sessions import SessionInterface, SessionMixin
from sqlalchemy import delete, select
from werkzeug.datastructures import CallbackDict

from models import SessionRecord
from utils import utcnow

SESSION_LIFETIME = timedelta(hours=12)
CLEANUP_INTERVAL = timedelta(minutes=5)
TOKEN_BYTES = 32


@dataclass(frozen=True)
class CookiePolicy:
    name: str = "session"
    path: str = "/"
    http_only: bool = True
    same_site: str = "Lax"
    # Never sent over plaintext, including local plaintext listeners.
    secure: bool = field(default=True, init=False)


class SessionStore:
    """
    Token -> (serialized state, expiry) rows in the sessions table.
    Expired rows are purged by commit at most once per cleanup interval.
    """

    def __init__(self, database, cleanup_interval=CLEANUP_INTERVAL):
        self.db = database
        self.cleanup_interval = cleanup_interval
        self.next_cleanup = utcnow()

    def find(self, token):
        stmt = select(SessionRecord).where(
            SessionRecord.token == token, SessionRecord.expiry > utcnow()
        )
        record = self.db.session.execute(stmt).scalar_one_or_none()
        if record is None:
            return None
        return record.data, record.expiry

    def commit(self, token, data, expiry):
        now = utcnow()
        if now >= self.next_cleanup:
            self.next_cleanup = now + self.cleanup_interval
            self._delete_expired(now)

        record = self.db.session.get(SessionRecord, token)
        if record is None:
            self.db.session.add(SessionRecord(token=token, data=data, expiry=expiry))
        else:
            record.data = data
            record.expiry = expiry
        self.db.session.commit()

    def delete(self, token):
        self.db.session.execute(delete(SessionRecord).where(SessionRecord.token == token))
        self.db.session.commit()

    def purge_expired(self):
        """ Deletes every expired row; returns how many were removed. """
        removed = self._delete_expired(utcnow())
        self.db.session.commit()
        return removed

    def _delete_expired(self, now):
        result = self.db.session.execute(delete(SessionRecord).where(SessionRecord.expiry <= now))
        return result.rowcount


class StoredSession(CallbackDict, SessionMixin):
    modified = False
    accessed = False

    def __init__(self, initial=None, token=None, deadline=None):
        def on_update(self):
            self.modified = True
            self.accessed = True

        super().__init__(initial, on_update)
        self.token = token
        self.deadline = deadline

    @property
    def new(self):
        return self.token is None

    def __getitem__(self, key):
        self.accessed = True
        return super().__getitem__(key)

    def get(self, key, default=None):
        self.accessed = True
        return super().get(key, default)

    def setdefault(self, key, default=None):
        self.accessed = True
        return super().setdefault(key, default)


class SessionManager(SessionInterface):
    """
    Flask session interface over a SessionStore.
    Lifetime and cookie policy are fixed at construction and exposed
    read-only; the Flask SESSION_COOKIE_* settings are not consulted.
    """
    session_class = StoredSession
    serializer = TaggedJSONSerializer()

    def __init__(self, store):
        self._store = store
        self._lifetime = SESSION_LIFETIME
        self._cookie = CookiePolicy()

    @property
    def store(self):
        return self._store

    @property
    def lifetime(self):
        return self._lifetime

    @property
    def cookie(self):
        return self._cookie

    def get_cookie_name(self, app):
        return self._cookie.name

    def get_cookie_path(self, app):
        return self._cookie.path

    def get_cookie_httponly(self, app):
        return self._cookie.http_only

    def get_cookie_samesite(self, app):
        return self._cookie.same_site

    def get_cookie_secure(self, app):
        return self._cookie.secure

    def open_session(self, app, request):
        token = request.cookies.get(self._cookie.name)
        if token:
            found = self._store.find(token)
            if found is not None:
                data, expiry = found
                return self.session_class(self.serializer.loads(data.decode("utf-8")), token=token, deadline=expiry)
        return self.session_class()

    def save_session(self, app, session, response):
        name = self.get_cookie_name(app)
        domain = self.get_cookie_domain(app)
        path = self.get_cookie_path(app)
        secure = self.get_cookie_secure(app)
        samesite = self.get_cookie_samesite(app)
        httponly = self.get_cookie_httponly(app)

        if session.accessed:
            response.vary.add("Cookie")

        # The deadline is absolute; activity alone never extends it.
        if not session.modified:
            return

        if not session:
            if not session.new:
                self._store.delete(session.token)
                response.delete_cookie(
                    name, domain=domain, path=path, secure=secure,
                    samesite=samesite, httponly=httponly,
                )
                response.vary.add("Cookie")
            return

        if session.new:
            session.token = secrets.token_urlsafe(TOKEN_BYTES)
            session.deadline = utcnow() + self._lifetime

        data = self.serializer.dumps(dict(session)).encode("utf-8")
        self._store.commit(session.token, data, session.deadline)
        response.set_cookie(
            name,
            session.token,
            expires=session.deadline,
            httponly=httponly,
            domain=domain,
            path=path,
            secure=secure,
            samesite=samesite,
        )
        response.vary.add("Cookie")


def bind_session_manager(app, handle):
    """
    Installs a database-backed SessionManager on `app` and returns it.
    Pure assembly: the store is not touched until the first request.
    """
    manager = SessionManager(SessionStore(handle.db))
    app.session_interface = manager
    return manager
