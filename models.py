from datetime import timedelta
from typing import List, Protocol

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from werkzeug.security import check_password_hash, generate_password_hash

from errors import DuplicateEmailError, InvalidCredentialsError, NoRecordError
from extensions import db
from utils import utcnow

LATEST_LIMIT = 10


# ==========================================
# TABLES
# ==========================================
class Snippet(db.Model):
    __tablename__ = 'snippets'
    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(100), nullable=False)
    content = db.Column(db.Text, nullable=False)
    created = db.Column(db.DateTime, nullable=False)
    expires = db.Column(db.DateTime, nullable=False, index=True)


class User(db.Model):
    __tablename__ = 'users'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False)
    hashed_password = db.Column(db.String(255), nullable=False)
    created = db.Column(db.DateTime, nullable=False)


class SessionRecord(db.Model):
    """ Server-side session state, keyed by the cookie token. """
    __tablename__ = 'sessions'
    token = db.Column(db.String(43), primary_key=True)
    data = db.Column(db.LargeBinary, nullable=False)
    expiry = db.Column(db.DateTime, nullable=False, index=True)


# ==========================================
# DATA-ACCESS INTERFACES
# ==========================================
class SnippetRepository(Protocol):
    def insert(self, title: str, content: str, expires_days: int) -> int: ...

    def get(self, snippet_id: int) -> Snippet: ...

    def latest(self) -> List[Snippet]: ...


class UserRepository(Protocol):
    def insert(self, name: str, email: str, password: str) -> None: ...

    def authenticate(self, email: str, password: str) -> int: ...

    def exists(self, user_id: int) -> bool: ...


# ==========================================
# SQL-BACKED IMPLEMENTATIONS
# ==========================================
class SnippetModel:
    """
    Snippet queries over the pooled database.
    Expired snippets are invisible to get() and latest().
    """

    def __init__(self, database):
        self.db = database

    def insert(self, title, content, expires_days):
        now = utcnow()
        snippet = Snippet(
            title=title,
            content=content,
            created=now,
            expires=now + timedelta(days=expires_days),
        )
        self.db.session.add(snippet)
        self.db.session.commit()
        return snippet.id

    def get(self, snippet_id):
        stmt = select(Snippet).where(Snippet.id == snippet_id, Snippet.expires > utcnow())
        snippet = self.db.session.execute(stmt).scalar_one_or_none()
        if snippet is None:
            raise NoRecordError(f"snippet {snippet_id} not found")
        return snippet

    def latest(self):
        stmt = (
            select(Snippet)
            .where(Snippet.expires > utcnow())
            .order_by(Snippet.id.desc())
            .limit(LATEST_LIMIT)
        )
        return list(self.db.session.execute(stmt).scalars())


class UserModel:
    def __init__(self, database):
        self.db = database

    def insert(self, name, email, password):
        user = User(
            name=name,
            email=email,
            hashed_password=generate_password_hash(password),
            created=utcnow(),
        )
        self.db.session.add(user)
        try:
            self.db.session.commit()
        except IntegrityError as err:
            self.db.session.rollback()
            if self._email_taken(email):
                raise DuplicateEmailError(email) from err
            raise

    def authenticate(self, email, password):
        """ Returns the user id when the email and password match. """
        user = self.db.session.execute(
            select(User).where(User.email == email)
        ).scalar_one_or_none()
        if user is None or not check_password_hash(user.hashed_password, password):
            raise InvalidCredentialsError(email)
        return user.id

    def exists(self, user_id):
        stmt = select(User.id).where(User.id == user_id)
        return self.db.session.execute(stmt).first() is not None

    def _email_taken(self, email):
        stmt = select(User.id).where(User.email == email)
        return self.db.session.execute(stmt).first() is not None
