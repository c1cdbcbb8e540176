from .events import Outbound


class SessionError(Exception):
    """Base for errors reported to the single connection that caused them."""

    event = Outbound.ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_payload(self) -> dict:
        return {'message': self.message}


class AuthError(SessionError):
    event = Outbound.AUTH_ERROR


class JoinError(SessionError):
    event = Outbound.JOIN_ERROR


class StartError(SessionError):
    pass


class SubmissionRejected(SessionError):
    pass


class AccessDenied(SessionError):
    def __init__(self, message: str = 'Access denied'):
        super().__init__(message)


class InvalidCommand(SessionError):
    pass


class PersistenceError(SessionError):
    def __init__(self, message: str = 'Internal error'):
        super().__init__(message)
