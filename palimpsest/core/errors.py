"""
Error taxonomy. Every error carries a short, caller-safe message and the HTTP
status the API layer answers with.
"""


class PalimpsestError(Exception):
    status_code = 500
    default_message = "Something went wrong, please try again."

    def __init__(self, message: str = ""):
        self.message = message or self.default_message
        super().__init__(self.message)


class Unauthenticated(PalimpsestError):
    """No valid caller."""
    status_code = 401
    default_message = "Unauthorized"


class Unauthorized(PalimpsestError):
    """Valid caller without rights over the row. Same status as Unauthenticated."""
    status_code = 401
    default_message = "Unauthorized"


class InvalidInput(PalimpsestError):
    status_code = 400
    default_message = "Invalid request"


class NotFound(PalimpsestError):
    status_code = 404
    default_message = "Not Found"


class DanglingAnchor(PalimpsestError):
    """Suggestion points at a document version that does not exist (anymore)."""
    status_code = 404
    default_message = "Document version not found"


class AlreadyResolved(PalimpsestError):
    status_code = 400
    default_message = "Suggestion already resolved"


class IngestionFailure(PalimpsestError):
    status_code = 400
    default_message = "Error, please try again."
