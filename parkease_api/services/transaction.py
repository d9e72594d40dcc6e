import logging
from contextlib import contextmanager

from sqlalchemy.exc import SQLAlchemyError

from parkease_api.db.db import db
from parkease_api.services.errors import BookingError, Unavailable

logger = logging.getLogger(__name__)


@contextmanager
def transaction(action):
    """
    Run one workflow step as a single database transaction.

    Typed failures roll back and propagate as-is. Driver errors roll back and
    surface as Unavailable.
    """
    try:
        yield db.session
        db.session.commit()
    except BookingError:
        db.session.rollback()
        raise
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.exception("Database error during %s", action)
        raise Unavailable() from e
