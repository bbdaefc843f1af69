# slipbox/transaction.py
import logging
from contextlib import contextmanager
from typing import Callable, Iterator

from sqlalchemy.exc import DBAPIError, IntegrityError, TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session

from slipbox.errors import ConflictOnConstraintError, TransactionFailureError

logger = logging.getLogger("slipbox_backend")


@contextmanager
def unit_of_work(session_factory: Callable[[], Session]) -> Iterator[Session]:
    """
    One transaction per operation: commit when the block finishes, roll back
    everything when it raises. Store errors come out as domain errors; any
    other exception propagates unchanged after the rollback.
    """
    session: Session = session_factory()
    try:
        yield session
        session.commit()
    except IntegrityError as e:
        session.rollback()
        logger.error(f"unit_of_work(): constraint violation, rolled back -> {e.orig}")
        raise ConflictOnConstraintError(f"Order constraint violated: {e.orig}") from e
    except (DBAPIError, PoolTimeoutError) as e:
        session.rollback()
        logger.warning(f"unit_of_work(): store failure, rolled back -> {e}")
        raise TransactionFailureError(f"Transaction aborted: {e}") from e
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
