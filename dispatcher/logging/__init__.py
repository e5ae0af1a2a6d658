"""Structured logging helpers shared by every dispatcher component."""

import logging
from typing import Optional, Union


class ComponentLoggerAdapter(logging.LoggerAdapter):
    """Adapter that stamps a ``component`` field on every record.

    Fields passed through ``extra=`` on the individual call are merged on top,
    so a call can still override the component when it needs to.
    """

    def process(self, msg, kwargs):
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs


def get_logger(
    name: str, component: Optional[str] = None
) -> Union[logging.Logger, ComponentLoggerAdapter]:
    """Return the named logger, wrapped to carry ``component`` when given.

    Example:
        >>> logger = get_logger(__name__, component="grouping")
        >>> logger.info("Grouped batch", extra={"event": "grouping.completed"})
    """
    logger = logging.getLogger(name)
    if component:
        return ComponentLoggerAdapter(logger, {"component": component})
    return logger
