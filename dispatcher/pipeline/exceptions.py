"""Exceptions raised by a dispatch run."""


class DispatchError(Exception):
    """Base class for failures that abort a whole dispatch invocation."""

    pass


class QueueFetchError(DispatchError):
    """The pending batch could not be read or claimed.

    Nothing has been sent or written when this is raised.
    """

    pass
