"""
In-memory stand-ins for the SQL-backed data-access models.

Injected in place of SnippetModel and UserModel when handlers are
exercised without a database.
"""
from datetime import datetime

from errors import DuplicateEmailError, InvalidCredentialsError, NoRecordError
from models import Snippet

MOCK_SNIPPET = Snippet(
    id=1,
    title="An old silent pond",
    content="An old silent pond...",
    created=datetime(2024, 1, 1, 10, 0),
    expires=datetime(2124, 1, 1, 10, 0),
)

DUPLICATE_EMAIL = "dupe@example.com"
KNOWN_EMAIL = "alice@example.com"
KNOWN_PASSWORD = "pa$$word"


class MockSnippetModel:
    def insert(self, title, content, expires_days):
        return 2

    def get(self, snippet_id):
        if snippet_id == MOCK_SNIPPET.id:
            return MOCK_SNIPPET
        raise NoRecordError(f"snippet {snippet_id} not found")

    def latest(self):
        return [MOCK_SNIPPET]


class MockUserModel:
    def insert(self, name, email, password):
        if email == DUPLICATE_EMAIL:
            raise DuplicateEmailError(email)

    def authenticate(self, email, password):
        if email == KNOWN_EMAIL and password == KNOWN_PASSWORD:
            return 1
        raise InvalidCredentialsError(email)

    def exists(self, user_id):
        return user_id == 1
