"""
Inventory mutations driven by approved usage submissions.
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional
from botocore.exceptions import ClientError
from . import dynamo
from .config import config
from .errors import StorageError
from .logging import logger
from .models import EquipmentStatus

MAX_DECREMENT_ATTEMPTS = 3


@dataclass(frozen=True)
class StockLevel:
    item_id: str
    remaining: float
    low_stock_threshold: float
    unit: Optional[str] = None
    name: Optional[str] = None

    @property
    def is_low(self) -> bool:
        return self.remaining <= self.low_stock_threshold


def _as_number(value):
    if isinstance(value, Decimal):
        return int(value) if value % 1 == 0 else float(value)
    return value


def _stock_level(item_id: str, attributes: dict) -> StockLevel:
    threshold = attributes.get('lowStockThreshold', config.DEFAULT_LOW_STOCK_THRESHOLD)
    return StockLevel(
        item_id=item_id,
        remaining=_as_number(attributes.get('quantity', 0)),
        low_stock_threshold=_as_number(threshold),
        unit=attributes.get('unit'),
        name=attributes.get('name')
    )


def decrement_stock(item_id: str, quantity, submission_id: Optional[str] = None,
                    now: Optional[datetime] = None) -> StockLevel:
    """
    Subtract `quantity` from a material's stock, clamping at zero.

    Both writes are conditional so concurrent approvals cannot push the stock
    below zero: subtract when enough stock is on hand, otherwise set zero.
    When `submission_id` is given it is recorded in appliedSubmissions and a
    repeated call for the same submission leaves the stock untouched.

    Returns:
        The stock level after the write

    Raises:
        StorageError: Item missing or stock kept changing under us
    """
    now = now or datetime.now(timezone.utc)
    amount = Decimal(str(quantity))
    key = {'itemId': item_id}

    guard = ''
    record = ''
    values = {':amount': amount, ':ts': now.isoformat()}
    if submission_id:
        guard = ' AND NOT contains(appliedSubmissions, :sid)'
        record = ' ADD appliedSubmissions :sids'
        values.update({':sid': submission_id, ':sids': {submission_id}})

    for _ in range(MAX_DECREMENT_ATTEMPTS):
        try:
            attributes = dynamo.update_item(
                config.MATERIALS_TABLE,
                key=key,
                update_expression='SET quantity = quantity - :amount, lastUpdated = :ts' + record,
                condition_expression='attribute_exists(itemId) AND quantity >= :amount' + guard,
                expression_values=values,
                return_values='ALL_NEW'
            )
            level = _stock_level(item_id, attributes)
            logger.info(f"Material {item_id} quantity updated to {level.remaining}")
            return level
        except ClientError:
            pass

        try:
            attributes = dynamo.update_item(
                config.MATERIALS_TABLE,
                key=key,
                update_expression='SET quantity = :zero, lastUpdated = :ts' + record,
                condition_expression=(
                    'attribute_exists(itemId) AND (attribute_not_exists(quantity) OR quantity < :amount)' + guard
                ),
                expression_values={**values, ':zero': 0},
                return_values='ALL_NEW'
            )
            level = _stock_level(item_id, attributes)
            logger.warning(f"Material {item_id} usage {quantity} exceeded stock, clamped to 0")
            return level
        except ClientError:
            pass

        item = dynamo.get_item(config.MATERIALS_TABLE, key, consistent=True)
        if item is None:
            raise StorageError(f"Material {item_id} not found")
        if submission_id and submission_id in item.get('appliedSubmissions', set()):
            logger.info(f"Usage from {submission_id} already applied to material {item_id}")
            return _stock_level(item_id, item)
        # Stock changed between the two writes; retry

    raise StorageError(f"Could not update stock for material {item_id}")


def mark_equipment_in_use(equipment_id: str, used_by: str, now: Optional[datetime] = None) -> None:
    now = now or datetime.now(timezone.utc)
    dynamo.update_item(
        config.EQUIPMENT_TABLE,
        key={'equipmentId': equipment_id},
        update_expression='SET #status = :in_use, lastUsedBy = :by, lastUsedAt = :ts',
        expression_names={'#status': 'status'},
        expression_values={
            ':in_use': EquipmentStatus.IN_USE,
            ':by': used_by,
            ':ts': now.isoformat()
        }
    )
    logger.info(f"Equipment {equipment_id} marked as in_use")
