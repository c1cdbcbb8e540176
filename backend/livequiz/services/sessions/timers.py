class TimerHandle:
    """Cancellation flag for one scheduled callback."""

    def __init__(self, delay: float):
        self.delay = delay
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class BackgroundTimers:
    """Runs delayed callbacks as Socket.IO background tasks.

    ``socketio.sleep`` cooperates with whichever async mode the server runs
    under (threading, eventlet or gevent).
    """

    def __init__(self, socketio):
        self._socketio = socketio

    def call_later(self, delay: float, callback, *args) -> TimerHandle:
        handle = TimerHandle(delay)

        def _worker():
            self._socketio.sleep(delay)
            if not handle.cancelled:
                callback(*args)

        self._socketio.start_background_task(_worker)
        return handle
