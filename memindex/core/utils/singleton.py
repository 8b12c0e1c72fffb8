"""Module providing a decorator to implement the Singleton design pattern."""

import threading


def singleton(cls):
    """A class decorator that ensures only one instance of a class exists."""

    _instance = {}
    _lock = threading.Lock()

    def _singleton(*args, **kwargs):
        """Return the existing instance or create a new one if it doesn't exist."""
        with _lock:
            if cls not in _instance:
                _instance[cls] = cls(*args, **kwargs)
        return _instance[cls]

    return _singleton
