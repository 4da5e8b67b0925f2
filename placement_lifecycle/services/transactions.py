"""Single-writer transaction scope for application mutations"""

import uuid
from contextlib import contextmanager
from typing import Iterator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from placement_lifecycle.domain.exceptions import PersistenceFailure
from placement_lifecycle.infrastructure.database.locks import ApplicationLocks, application_locks


@contextmanager
def locked_transaction(
    db: Session,
    application_id: uuid.UUID,
    locks: ApplicationLocks = application_locks,
) -> Iterator[None]:
    """
    Hold the application's write lock for one transaction.

    Commits on success. Any failure rolls back every write of the block
    before the lock is released; database errors surface as PersistenceFailure.
    """
    with locks.hold(application_id):
        try:
            yield
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise PersistenceFailure(f"Transaction aborted: {e}") from e
        except Exception:
            db.rollback()
            raise
