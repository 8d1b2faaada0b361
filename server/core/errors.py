"""Exception types raised by the server.

Body-parser errors carry the HTTP status they map to; the middleware that
raises them renders them itself since it sits outside FastAPI's handlers.
"""


class ServerError(Exception):
    """Base class for server errors."""


class BodyParserError(ServerError):
    status_code = 400

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class MalformedBodyError(BodyParserError):
    status_code = 400


class PayloadTooLargeError(BodyParserError):
    status_code = 413


class UnsupportedCharsetError(BodyParserError):
    status_code = 415


class DatabaseConnectionError(ServerError):
    """The document database could not be reached."""
