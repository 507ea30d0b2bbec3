"""Deadline tracking for one scheduler request."""

from __future__ import annotations

from datetime import timedelta

from safir.datetime import current_datetime

__all__ = ["Timeout"]


class Timeout:
    """Track a cumulative timeout on a series of requests.

    Handling a scheduler request may read nodes from Kubernetes and then
    make several registry requests per node (one or two per image), all of
    which must complete within the scheduler's time budget for the request.
    Each operation asks this object for its own timeout, which is whatever
    remains of the total.

    Parameters
    ----------
    timeout
        Total time allowed.
    """

    def __init__(self, timeout: timedelta) -> None:
        self._timeout = timeout
        self._start = current_datetime(microseconds=True)

    def elapsed(self) -> float:
        """Elapsed time since the timeout started.

        Returns
        -------
        float
            Seconds elapsed since the object was created.
        """
        now = current_datetime(microseconds=True)
        return (now - self._start).total_seconds()

    def error(self, operation: str) -> str:
        """Generate an error message for an expired timeout.

        Parameters
        ----------
        operation
            Operation that timed out.
        """
        return f"{operation} timed out after {self.elapsed()}s"

    def left(self, operation: str = "Operation") -> float:
        """Return the amount of time remaining in seconds.

        Parameters
        ----------
        operation
            Operation about to be started, used in the error message.

        Returns
        -------
        float
            Seconds remaining in the timeout.

        Raises
        ------
        TimeoutError
            Raised if the timeout has expired.
        """
        now = current_datetime(microseconds=True)
        left = (self._timeout - (now - self._start)).total_seconds()
        if left <= 0.0:
            raise TimeoutError(self.error(operation))
        return left
