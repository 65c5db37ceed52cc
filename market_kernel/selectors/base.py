"""
Module: market_kernel.selectors.base
Responsibility: Base class for read-only query selectors.
Architecture position: Kernel > Selectors.  May import from db/ and models/.
    MUST NOT import from services/.

Invariants enforced:
    - Read-only: selectors never add, delete, flush or commit.
    - Every query applies ``not_deleted`` explicitly for each entity it reads.
    - Selectors return frozen DTOs, never ORM instances.
"""

from abc import ABC

from sqlalchemy.orm import Session

from market_kernel.domain.clock import Clock, SystemClock


class BaseSelector(ABC):
    """
    Abstract base class for selectors.

    Contract:
        The caller owns the session and its transaction scope.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self.clock = clock or SystemClock()

    @staticmethod
    def _page_bounds(page: int, page_size: int) -> tuple[int, int]:
        if page < 1:
            raise ValueError("page must be >= 1")
        if page_size < 1:
            raise ValueError("page_size must be >= 1")
        return (page - 1) * page_size, page_size
