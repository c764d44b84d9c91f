from __future__ import annotations

import logging
from functools import wraps

from ..core.exceptions import DomainError, InternalError

logger = logging.getLogger(__name__)


def domain_boundary(func):
    """Let taxonomy errors through; wrap anything else as InternalError."""

    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except DomainError:
            raise
        except Exception as exc:
            logger.exception("Unexpected failure in %s", func.__qualname__)
            raise InternalError() from exc

    return wrapper
