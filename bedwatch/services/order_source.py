"""
Order sources feed fresh snapshots of orders and beds to each scheduler tick.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

from ..models.orders import Bed, IVOrder, MedOrder, Order, OrderParseError, bed_number_map

logger = logging.getLogger(__name__)


class OrderSource:
    """Base class for order sources. Every call returns a new snapshot."""

    async def fetch_iv_orders(self) -> List[IVOrder]:
        raise NotImplementedError

    async def fetch_med_orders(self) -> List[MedOrder]:
        raise NotImplementedError

    async def fetch_location_map(self) -> Dict[int, int]:
        raise NotImplementedError


def parse_order_rows(rows: Iterable[Dict[str, Any]], order_cls) -> List[Order]:
    """
    Turn storage rows into orders, dropping only rows that are not mappings.

    Rows with bad timestamps still become (malformed) orders so the scanner
    can count and skip them.
    """
    orders = []
    for row in rows:
        try:
            orders.append(order_cls.from_dict(row))
        except OrderParseError as e:
            logger.error(f"Dropping unreadable {order_cls.__name__} row: {e}")
    return orders


class InMemoryOrderSource(OrderSource):
    """Holds orders and beds in process memory."""

    def __init__(
        self,
        iv_orders: Optional[List[IVOrder]] = None,
        med_orders: Optional[List[MedOrder]] = None,
        beds: Optional[List[Bed]] = None
    ):
        self.iv_orders: List[IVOrder] = list(iv_orders or [])
        self.med_orders: List[MedOrder] = list(med_orders or [])
        self.beds: List[Bed] = list(beds or [])

    @classmethod
    def from_rows(cls, data: Dict[str, List[Dict[str, Any]]]) -> 'InMemoryOrderSource':
        """Build from a ``{"ivs": [...], "meds": [...], "beds": [...]}`` dump."""
        return cls(
            iv_orders=parse_order_rows(data.get("ivs", []), IVOrder),
            med_orders=parse_order_rows(data.get("meds", []), MedOrder),
            beds=[Bed.from_dict(row) for row in data.get("beds", [])],
        )

    async def fetch_iv_orders(self) -> List[IVOrder]:
        return list(self.iv_orders)

    async def fetch_med_orders(self) -> List[MedOrder]:
        return list(self.med_orders)

    async def fetch_location_map(self) -> Dict[int, int]:
        return bed_number_map(self.beds)

    def add_order(self, order: Order) -> None:
        if isinstance(order, IVOrder):
            self.iv_orders.append(order)
        elif isinstance(order, MedOrder):
            self.med_orders.append(order)
        else:
            raise TypeError(f"Unsupported order type {type(order).__name__}")

    def close_orders_for_location(self, location_id: int) -> List[Order]:
        """Soft-retire every active order on a bed. Returns the orders closed."""
        closed = []
        for order in [*self.iv_orders, *self.med_orders]:
            if order.location_id == location_id and order.is_active:
                order.close()
                closed.append(order)
        return closed
