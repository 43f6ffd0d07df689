import random
import time

from flask_sqlalchemy import SQLAlchemy
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

db = SQLAlchemy()

CAS_MAX_ATTEMPTS = 100


class ContentionError(SQLAlchemyError):
    """A keyed row kept changing underneath us for the whole retry budget."""


def compare_and_set(mutate, max_attempts: int = CAS_MAX_ATTEMPTS):
    """
    Runs ``mutate()`` against freshly loaded rows and commits.

    Versioned rows (``version_id_col``) turn a lost race into StaleDataError and
    lazily created rows turn it into IntegrityError; either way the session is
    rolled back and ``mutate`` runs again on the new committed state. Whatever
    ``mutate`` returns must be plain values: ORM objects are expired on commit.
    """
    for attempt in range(max_attempts):
        try:
            result = mutate()
            db.session.commit()
            return result
        except (StaleDataError, IntegrityError):
            db.session.rollback()
            time.sleep(random.uniform(0, 0.002 * min(attempt + 1, 10)))
    raise ContentionError(f"gave up after {max_attempts} concurrent update conflicts")
