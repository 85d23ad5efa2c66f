"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Provides the common constructor and session-handling contract for
    every service in the kernel layer.  All concrete services inherit
    from BaseService, receiving a SQLAlchemy ``Session`` that they use
    via ``session.flush()`` -- never ``session.commit()``.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    Transaction boundaries: services flush within the caller's transaction
    and never commit or rollback themselves.  The caller
    (``CollectionLedger`` or a test) owns commit/rollback, which is what makes
    compound operations such as close-and-reopen atomic.

Failure modes:
    - If a subclass calls ``session.commit()`` the atomicity of multi-step
      operations is broken.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from collection_kernel.db.base import Base
from collection_kernel.domain.clock import Clock, SystemClock

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for all kernel services.

    Guarantees:
        - The service never calls ``session.commit()`` or
          ``session.rollback()``.

    Non-goals:
        - Does NOT provide query-only (read) methods -- those belong
          in ``collection_kernel/selectors/``.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        """
        Initialize the service.

        Args:
            session: SQLAlchemy session for database operations.
            clock: Source of "today".  Defaults to the system clock.
        """
        self.session = session
        self.clock = clock or SystemClock()
