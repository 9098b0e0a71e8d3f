import fcntl
import logging
import os


class SingleInstanceLock:
    """
    Non-blocking fcntl lock on a pid file.

    Polling mode holds it for the life of the process: a second poller on the
    same token would also run the daily cycle and double every reminder.
    """

    def __init__(self, lock_path: str):
        self.lock_path = lock_path
        self._fh = None

    def acquire(self) -> bool:
        os.makedirs(os.path.dirname(os.path.abspath(self.lock_path)), exist_ok=True)
        fh = open(self.lock_path, "a+")
        try:
            fcntl.flock(fh.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except OSError:
            fh.close()
            return False
        fh.seek(0)
        fh.truncate()
        fh.write(str(os.getpid()))
        fh.flush()
        self._fh = fh
        return True

    def release(self):
        if not self._fh:
            return
        try:
            fcntl.flock(self._fh.fileno(), fcntl.LOCK_UN)
        except OSError as e:
            logging.warning("Failed to unlock instance lock: %s", e)
        self._fh.close()
        self._fh = None
