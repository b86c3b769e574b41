"""
Domain errors for the ticketing core.

Services raise these; the app-level error handler turns them into the
standard API error envelope with the matching HTTP status.
"""


class TicketingError(Exception):
    """Base domain error with an HTTP status, a machine code and a message."""

    status_code = 500
    code = 'internal_error'

    def __init__(self, message, code=None, details=None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.details = details


class BadRequest(TicketingError):
    status_code = 400
    code = 'bad_request'


class Unauthorized(TicketingError):
    status_code = 401
    code = 'unauthorized'


class Forbidden(TicketingError):
    status_code = 403
    code = 'forbidden'


class NotFound(TicketingError):
    status_code = 404
    code = 'not_found'


class Conflict(TicketingError):
    status_code = 409
    code = 'conflict'


class GatewayError(TicketingError):
    """Raised when the payment gateway cannot be reached or rejects a call."""

    status_code = 500
    code = 'gateway_error'
