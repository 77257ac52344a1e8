# referral_hub/db/transaction.py
"""
Unit of work for multi-document writes.

With a replica set every write inside the block shares one client session
transaction. Without one (standalone mongod, tests) each write registers an
undo step instead, and the steps are replayed newest-first when the block
fails. Either way the caller sees all of the writes or none of them.
"""
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, List, Optional

from pymongo.errors import DuplicateKeyError, PyMongoError

from . import mongo
from ..utils.errors import StorageError

logger = logging.getLogger(__name__)

Undo = Callable[[], Awaitable[object]]


class UnitOfWork:
    def __init__(self, session=None, label: str = "unit of work"):
        self.session = session
        self.label = label
        self._undo: List[Undo] = []

    @property
    def transactional(self) -> bool:
        return self.session is not None

    def on_rollback(self, undo: Undo) -> None:
        # the server-side transaction already covers rollback
        if self.session is None:
            self._undo.append(undo)

    async def rollback(self) -> None:
        steps, self._undo = self._undo, []
        for undo in reversed(steps):
            try:
                await undo()
            except Exception:
                logger.exception("Compensation step failed during rollback of %s", self.label)


def _storage_error(label: str, exc: PyMongoError) -> StorageError:
    logger.error("%s aborted by storage failure: %s", label, exc)
    return StorageError(f"Storage failure during {label}; nothing was applied.")


@asynccontextmanager
async def unit_of_work(label: str = "unit of work", client=None) -> AsyncIterator[UnitOfWork]:
    """
    DuplicateKeyError is re-raised untouched so callers can retry with a fresh
    code; any other PyMongoError is reported as StorageError.
    """
    if mongo.transactions_enabled():
        client = client if client is not None else mongo.get_client()
        try:
            async with await client.start_session() as session:
                async with session.start_transaction():
                    yield UnitOfWork(session=session, label=label)
        except DuplicateKeyError:
            raise
        except PyMongoError as e:
            raise _storage_error(label, e) from e
        return

    uow = UnitOfWork(label=label)
    try:
        yield uow
    except Exception as e:
        await uow.rollback()
        if isinstance(e, DuplicateKeyError):
            raise
        if isinstance(e, PyMongoError):
            raise _storage_error(label, e) from e
        raise


async def run_with_code_retry(
    operation: Callable[[], Awaitable[object]],
    attempts: int,
    what: str = "code",
):
    """
    Re-run a whole unit of work when a unique index rejected one of its
    writes. Each run generates fresh codes and re-reads state, so a clash with
    a concurrent writer resolves itself on the next pass.
    """
    last: Optional[DuplicateKeyError] = None
    for _ in range(max(1, attempts)):
        try:
            return await operation()
        except DuplicateKeyError as e:
            last = e
            logger.info("Generated %s collided on unique index, retrying", what)
            continue
    raise StorageError(f"Failed to generate a unique {what}") from last
