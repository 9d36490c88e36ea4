"""Order numbering: a stored counter handed out inside the checkout unit of work.

The counter is an aggregate so that two checkouts racing for the same number
conflict on its version at commit. The losing handler is re-run by Protean's
version retry and draws the next number.
"""

from protean.exceptions import ObjectNotFoundError
from protean.fields import Integer, String
from protean.utils.globals import current_domain

from ordering.domain import ordering

ORDER_NUMBER_SEQUENCE = "order_number"


@ordering.aggregate
class Sequence:
    name = String(max_length=50, identifier=True)
    last_value = Integer(default=0, min_value=0)

    def allocate(self) -> int:
        """Advance the counter and return the new value."""
        self.last_value = (self.last_value or 0) + 1
        return self.last_value


@ordering.repository(part_of=Sequence)
class SequenceRepository:
    def get_or_start(self, name: str) -> Sequence:
        try:
            return self.get(name)
        except ObjectNotFoundError:
            return Sequence(name=name)


def ensure_order_sequence() -> None:
    """Store the order-number counter if it does not exist yet.

    Run at startup so concurrent first checkouts update one stored row
    instead of each inserting their own.
    """
    repo = current_domain.repository_for(Sequence)
    try:
        repo.get(ORDER_NUMBER_SEQUENCE)
    except ObjectNotFoundError:
        repo.add(Sequence(name=ORDER_NUMBER_SEQUENCE))


def allocate_order_number() -> int:
    """Draw the next order number. Must run inside the checkout unit of work."""
    repo = current_domain.repository_for(Sequence)
    sequence = repo.get_or_start(ORDER_NUMBER_SEQUENCE)
    number = sequence.allocate()
    repo.add(sequence)
    return number
