"""Live session engine: session store, connection registry, scheduler.

This package holds the in-memory authority for running quizzes. Socket.IO
handlers parse inbound events into commands and hand them to the
scheduler; persistence and auth are reached through collaborators so the
engine can be exercised without a transport.
"""

from .state import SessionStore
from .registry import ConnectionRegistry
from .scheduler import QuestionScheduler

__all__ = ['SessionStore', 'ConnectionRegistry', 'QuestionScheduler']
