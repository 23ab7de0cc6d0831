"""
Assignment Resolver — picks an operator for a new pickup request.

Behavioral Contract:
- Pure: reads only the request and the operator pool it is handed.
- An explicit preferred operator that exists in the pool overrides zone matching
  (availability is not consulted for an explicit choice).
- Otherwise the first operator, in pool order, whose zone matches the request's
  zone and whose availability is not explicitly False.
- No match returns None; the request stays unassigned and valid.

Tie-break is first-match in pool order. The pool comes from the record store
in insertion order, so results are deterministic for a given store.
"""

from typing import Iterable, Optional

from wasteup_kernel.models.pickup import PickupRequest
from wasteup_kernel.models.user import User, UserRole


def _operators(pool: Iterable[User]) -> list:
    return [u for u in pool if u.role == UserRole.PSP_OPERATOR]


def resolve(request: PickupRequest, pool: Iterable[User]) -> Optional[str]:
    """Return the id of the operator to assign, or None."""
    operators = _operators(pool)

    if request.preferred_operator_id:
        for operator in operators:
            if operator.id == request.preferred_operator_id:
                return operator.id

    for operator in operators:
        if operator.zone == request.zone and operator.is_available:
            return operator.id

    return None


def find_operator(operator_id: Optional[str], pool: Iterable[User]) -> Optional[User]:
    """Look up an operator in the pool by id."""
    if not operator_id:
        return None
    return next((u for u in _operators(pool) if u.id == operator_id), None)
