from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy.exc import SQLAlchemyError

from crm.services.errors import StorageError

logger = logging.getLogger(__name__)


@contextmanager
def storage_errors(action: str) -> Iterator[None]:
    """Re-raise driver/ORM failures as StorageError naming the action.

    IntegrityError is a SQLAlchemyError too; repositories that turn a
    unique violation into a domain outcome must catch it inside this block.
    """
    try:
        yield
    except SQLAlchemyError as e:
        logger.error("Storage failure action=%s error=%s", action, type(e).__name__)
        raise StorageError(f"Storage failure while trying to {action}") from e
