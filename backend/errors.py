"""
Error taxonomy shared by the service layer and the HTTP boundary.

Services raise these; `main.py` maps them to status codes. They subclass
the builtin exceptions the services would otherwise raise so callers that
only know about `ValueError` / `LookupError` / `PermissionError` still work.
"""


class ValidationError(ValueError):
    """Bad identifier, empty required text or malformed body (400)."""


class NotFoundError(LookupError):
    """Missing day, photo or comment (404)."""


class UnauthorizedError(PermissionError):
    """Admin token missing or wrong (401)."""


class ForbiddenError(PermissionError):
    """Caller is neither admin nor the comment's author (403)."""
