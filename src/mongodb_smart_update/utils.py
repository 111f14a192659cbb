import time
import random
from contextlib import contextmanager
from typing import Callable, Iterable, List, Tuple, Type

from packaging.version import InvalidVersion, Version

from .exceptions import SmartUpdateError


def retry_with_backoff(attempts: int = 3, delay: float = 0.2,
                       exceptions: Tuple[Type[BaseException], ...] = (Exception,)):
    """Simple retry decorator with exponential backoff and jitter."""
    def decorator(fn: Callable):
        def wrapped(*args, **kwargs):
            for i in range(attempts):
                try:
                    return fn(*args, **kwargs)
                except exceptions:
                    if i == attempts - 1:
                        raise
                    sleep_time = delay * (2 ** i) + random.random() * 0.1
                    time.sleep(sleep_time)
        wrapped.__wrapped__ = fn
        return wrapped
    return decorator


@contextmanager
def wrap_error(message: str, **context):
    """Re-raise any failure inside the block as ``SmartUpdateError``.

    The original error is kept as ``__cause__`` and its text appended, so
    ``wrap_error('get pod list')`` reads ``get pod list: <reason>``.
    Errors that are already ``SmartUpdateError`` get the prefix too but keep
    their type.
    """
    try:
        yield
    except SmartUpdateError as e:
        e.args = (f'{message}: {e}',) + e.args[1:]
        e.context = {**context, **e.context}
        raise
    except Exception as e:
        raise SmartUpdateError(f'{message}: {e}', context) from e


def sort_members_descending(members: Iterable) -> List:
    """Order members by name, highest first.

    Pods of a statefulset are named ``<sts>-<ordinal>``, so this restarts the
    highest ordinal first, the same order the platform's own rolling update
    uses. Repeated passes therefore visit members in the same sequence.
    """
    return sorted(members, key=lambda m: m.name, reverse=True)


def version_at_least(current: str, minimum: str) -> bool:
    """Compare a cluster resource version (``1.15.0``) against a minimum.

    Unparseable or empty versions are treated as older than any minimum.
    """
    try:
        return Version(current) >= Version(minimum)
    except (InvalidVersion, TypeError):
        return False
