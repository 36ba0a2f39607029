"""Bookkeeping for orders that have been split into fragments."""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import asdict
from typing import Dict, Iterable, List, Mapping, Optional

from .domain import Order, SplitFamily
from .errors import InvariantViolation, NotFound

logger = logging.getLogger(__name__)


def fragment_po_number(base_po_number: str, split_number: int) -> str:
    return f"{base_po_number}-S{split_number}"


class SplitBookkeeper:
    """Index of orders by split family over a snapshot of orders.

    A family is the original order (``po_number == base``, no split number)
    plus every fragment whose ``base_po_number`` is the base. The quantities
    of all members must add up to the family's ``original_quantity``.
    """

    def __init__(
        self,
        orders: Iterable[Order],
        families: Mapping[str, SplitFamily],
    ) -> None:
        self._families = dict(families)
        self._members: Dict[str, List[Order]] = defaultdict(list)
        for order in orders:
            self._members[order.family_po_number].append(order)

    def family(self, base_po_number: str) -> Optional[SplitFamily]:
        return self._families.get(base_po_number)

    def members(self, base_po_number: str) -> List[Order]:
        members = self._members.get(base_po_number, [])
        return sorted(members, key=lambda order: order.split_number or 0)

    def root(self, base_po_number: str) -> Order:
        for order in self._members.get(base_po_number, ()):
            if not order.is_fragment:
                return order
        raise NotFound("Order", base_po_number)

    def fragments(self, base_po_number: str) -> List[Order]:
        return [order for order in self.members(base_po_number) if order.is_fragment]

    def next_split_number(self, base_po_number: str) -> int:
        numbers = [order.split_number or 0 for order in self._members.get(base_po_number, ())]
        return max(numbers, default=0) + 1

    def verify(
        self,
        family: SplitFamily,
        members: Optional[Iterable[Order]] = None,
    ) -> None:
        """Raise ``InvariantViolation`` when member quantities drift from the total."""

        members = list(members) if members is not None else self.members(family.base_po_number)
        actual = sum(order.order_quantity for order in members)
        if actual != family.original_quantity:
            logger.error(
                "Split family %s out of balance: expected %s, got %s; state=%r",
                family.base_po_number,
                family.original_quantity,
                actual,
                {
                    "family": asdict(family),
                    "members": [
                        {
                            "id": order.id,
                            "po_number": order.po_number,
                            "split_number": order.split_number,
                            "order_quantity": order.order_quantity,
                            "produced": order.produced_quantity,
                            "status": order.status.value,
                        }
                        for order in members
                    ],
                },
            )
            raise InvariantViolation(family.base_po_number, family.original_quantity, actual)

    def verify_all(self) -> None:
        for family in self._families.values():
            self.verify(family)


def replace_members(
    members: Iterable[Order],
    updated: Iterable[Order] = (),
    removed_ids: Iterable[str] = (),
) -> List[Order]:
    """Apply pending order changes to a member list without touching the originals."""

    replacements = {order.id: order for order in updated}
    removed = set(removed_ids)
    result = [
        replacements.pop(order.id, order) for order in members if order.id not in removed
    ]
    result.extend(replacements.values())
    return result


__all__ = ["SplitBookkeeper", "fragment_po_number", "replace_members"]
