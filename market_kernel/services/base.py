"""
BaseService -- common base for the kernel's ledger services.

Responsibility:
    Holds the caller's SQLAlchemy ``Session`` and the injected ``Clock``.
    Services persist with ``session.flush()`` only.

Architecture position:
    Kernel > Services.  InventoryLedger and CashbackLedger extend this.

Invariants enforced:
    - Transaction boundaries belong to the caller.  A service never commits
      or rolls back, so the orchestrator can undo every step of a failed
      unit of work at once.
"""

from abc import ABC

from sqlalchemy.orm import Session

from market_kernel.domain.clock import Clock, SystemClock


class BaseService(ABC):
    """
    Abstract base class for kernel services.

    Contract:
        Accepts a Session from the caller and flushes within its active
        transaction.

    Non-goals:
        - Does NOT manage transaction lifecycle.
        - Read-only listings belong in ``market_kernel/selectors/``.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self.clock = clock or SystemClock()
