"""Customer-level grouping of normalized items."""

import logging
from decimal import Decimal
from typing import Dict, Iterable, List, Tuple

from .config import AggregationMode
from .models import CustomerGroup, NormalizedItem

logger = logging.getLogger(__name__)


class CustomerAggregator:
    """Groups items per customer in the order they were fetched."""

    def __init__(self, mode: AggregationMode = AggregationMode.LUMP_SUM):
        self.mode = mode

    def aggregate(self, items: Iterable[NormalizedItem]) -> List[CustomerGroup]:
        """Build one group per distinct customer.

        A group takes the currency of its first item. Items in another
        currency are dropped from the group and logged; their records stay
        unpaid and are picked up again next pass.

        Args:
            items: Validated items in fetch order.

        Returns:
            Groups in order of each customer's first appearance.
        """
        groups: Dict[str, CustomerGroup] = {}
        for item in items:
            group = groups.get(item.customer_id)
            if group is None:
                group = CustomerGroup(customer_id=item.customer_id, currency_code=item.currency_code)
                groups[item.customer_id] = group
            if item.currency_code != group.currency_code:
                logger.warning(
                    f"Record {item.source_record_id} for customer {item.customer_id} is in "
                    f"{item.currency_code}, group currency is {group.currency_code}; not charging it"
                )
                continue
            group.items.append(item)

        logger.info(f"Aggregated {sum(len(g.items) for g in groups.values())} items into {len(groups)} customer groups")
        return list(groups.values())

    @staticmethod
    def lump_sum(group: CustomerGroup) -> Tuple[Decimal, str]:
        """Total amount and currency for a lump-sum charge."""
        return group.total_amount, group.currency_code
