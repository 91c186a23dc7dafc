"""
Error taxonomy for snippetbox.

Startup errors are fatal: the entry point logs them and exits.
Model errors are raised by the data-access layer and mapped to HTTP
responses by the handlers.
"""


class SnippetboxError(Exception):
    """Base exception for snippetbox."""


# ==========================================
# STARTUP
# ==========================================
class DatabaseUnavailableError(SnippetboxError):
    """The database could not be opened, probed or prepared."""


class TemplateCacheError(SnippetboxError):
    """The template cache could not be built."""


class ServerClosedError(SnippetboxError):
    """The listener stopped serving."""


class TLSPolicyError(SnippetboxError):
    """The TLS key-exchange policy cannot be enforced."""


# ==========================================
# REQUEST HANDLING
# ==========================================
class FormDecodeError(SnippetboxError):
    def __init__(self, field, value):
        super().__init__(f"cannot decode form field {field!r} from {value!r}")
        self.field = field
        self.value = value


class NoRecordError(SnippetboxError):
    """No matching record found."""


class InvalidCredentialsError(SnippetboxError):
    """Email or password did not match."""


class DuplicateEmailError(SnippetboxError):
    """The email address is already registered."""
