"""
OrderNumberService -- human-readable order numbers ``ORD-YYYYMMDD-NNNN``.

Invariants enforced:
    - Numbers are sequential per calendar day (UTC) and unique.  The
      counter row is incremented in place with a single UPDATE, which holds
      the row (or database) write lock until the caller's transaction ends.
      Aggregate max-plus-one over orders is never used.

Failure modes:
    - IntegrityError if two transactions create the first counter row of a
      day at the same time.  The orchestrator reports it as a retryable
      Conflict.
"""

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from market_kernel.domain.clock import Clock
from market_kernel.logging_config import get_logger
from market_kernel.models.order import SequenceCounterModel

logger = get_logger("services.order_numbers")


class OrderNumberService:

    def __init__(self, session: Session, clock: Clock, prefix: str = "ORD"):
        self._session = session
        self._clock = clock
        self._prefix = prefix

    def next_order_number(self) -> str:
        day = self._clock.now().strftime("%Y%m%d")
        counter_name = f"order_number:{day}"

        bumped = self._session.execute(
            update(SequenceCounterModel)
            .where(SequenceCounterModel.name == counter_name)
            .values(current_value=SequenceCounterModel.current_value + 1)
            .execution_options(synchronize_session=False)
        ).rowcount
        if bumped == 0:
            self._session.add(SequenceCounterModel(name=counter_name, current_value=1))
            self._session.flush()

        value = self._session.execute(
            select(SequenceCounterModel.current_value).where(
                SequenceCounterModel.name == counter_name
            )
        ).scalar_one()

        number = f"{self._prefix}-{day}-{value:04d}"
        logger.debug("order_number_allocated", extra={"order_number": number})
        return number
