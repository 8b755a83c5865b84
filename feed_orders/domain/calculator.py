"""
Requirement Calculator — Feed Orders Domain

Turns per-animal feeding rates into quantity, bag and cost figures for a
feeding period. The calculation is pure: it never touches the ORM and
returns the same preview for the same inputs.

Rounding rules:

- Bags always round up; a fraction of a bag still has to be bought.
- Per-item and total quantities/costs are rounded to two decimals for
  display only. Totals are summed from the unrounded per-item values.
"""

import math
from dataclasses import dataclass
from datetime import date, datetime
from decimal import ROUND_CEILING, ROUND_HALF_UP, Decimal, InvalidOperation

from feed_orders.domain.exceptions import ValidationError

TWO_PLACES = Decimal("0.01")
QUANTITY_PLACES = Decimal("0.001")
MIN_TIMES_PER_DAY = 1
MAX_TIMES_PER_DAY = 10


@dataclass(frozen=True)
class FeedItemSnapshot:
    """Catalog values of a feed item at the moment of calculation."""

    id: int
    name: str
    quantity_per_bag: Decimal
    price_per_bag: Decimal


@dataclass(frozen=True)
class LineItem:
    feed_item_id: int
    quantity_per_time: Decimal
    number_of_times_per_day: int


@dataclass(frozen=True)
class ItemRequirement:
    feed_item_id: int
    item_name: str
    quantity_per_time: Decimal
    number_of_times_per_day: int
    quantity_per_bag: Decimal
    price_per_bag: Decimal
    quantity_required: Decimal
    bags_required: int
    cost_required: Decimal


@dataclass(frozen=True)
class RequirementPreview:
    start_date: date
    end_date: date
    number_of_animals: int
    number_of_days: int
    items: tuple
    total_quantity_required: Decimal
    total_bags: int
    total_cost: Decimal


def round_money(value):
    return value.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def to_decimal(value, field):
    if isinstance(value, bool):
        raise ValidationError(field, "must be a number.")
    if isinstance(value, float):
        value = str(value)
    try:
        result = Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(field, "must be a number.")
    if not result.is_finite():
        raise ValidationError(field, "must be a finite number.")
    return result


def _to_int(value, field):
    if isinstance(value, bool) or not isinstance(value, (int, Decimal, str)):
        raise ValidationError(field, "must be an integer.")
    try:
        number = Decimal(value)
    except (InvalidOperation, ValueError):
        raise ValidationError(field, "must be an integer.")
    if not number.is_finite() or number != number.to_integral_value():
        raise ValidationError(field, "must be an integer.")
    return int(number)


def count_days(start_date, end_date):
    """Inclusive number of days between two dates (both endpoints count)."""
    if not isinstance(start_date, date):
        raise ValidationError("start_date", "must be a date.")
    if not isinstance(end_date, date):
        raise ValidationError("end_date", "must be a date.")
    if isinstance(start_date, datetime) != isinstance(end_date, datetime):
        raise ValidationError("end_date", "must be the same type as start_date.")
    if end_date <= start_date:
        raise ValidationError("end_date", "must be after start_date.")

    span_seconds = (end_date - start_date).total_seconds()
    return math.ceil(span_seconds / 86400) + 1


def _coerce_line_item(raw, index):
    prefix = f"line_items[{index}]"
    if isinstance(raw, LineItem):
        feed_item_id = raw.feed_item_id
        quantity_per_time = raw.quantity_per_time
        times_per_day = raw.number_of_times_per_day
    else:
        try:
            feed_item_id = raw["feed_item_id"]
            quantity_per_time = raw["quantity_per_time"]
            times_per_day = raw["number_of_times_per_day"]
        except KeyError as exc:
            raise ValidationError(f"{prefix}.{exc.args[0]}", "is required.")
        except TypeError:
            raise ValidationError(prefix, "must be an object.")

    if feed_item_id in (None, ""):
        raise ValidationError(f"{prefix}.feed_item_id", "is required.")

    quantity_per_time = to_decimal(quantity_per_time, f"{prefix}.quantity_per_time")
    if quantity_per_time <= 0:
        raise ValidationError(f"{prefix}.quantity_per_time", "must be greater than 0.")
    if quantity_per_time.normalize().as_tuple().exponent < QUANTITY_PLACES.as_tuple().exponent:
        raise ValidationError(f"{prefix}.quantity_per_time", "must have at most three decimal places.")

    times_per_day = _to_int(times_per_day, f"{prefix}.number_of_times_per_day")
    if not MIN_TIMES_PER_DAY <= times_per_day <= MAX_TIMES_PER_DAY:
        raise ValidationError(
            f"{prefix}.number_of_times_per_day",
            f"must be between {MIN_TIMES_PER_DAY} and {MAX_TIMES_PER_DAY}.",
        )

    return LineItem(feed_item_id, quantity_per_time, times_per_day)


def calculate_requirement(start_date, end_date, number_of_animals, line_items, catalog):
    """
    Computes the feed requirement preview for a feeding period.

    ``line_items`` may hold ``LineItem`` instances or mappings with the same
    keys. ``catalog`` maps feed item ids to ``FeedItemSnapshot`` values; an id
    missing from it is a validation failure, never a skipped line.

    Raises ValidationError naming the first offending field. Nothing partial
    is ever returned.
    """
    number_of_days = count_days(start_date, end_date)

    number_of_animals = _to_int(number_of_animals, "number_of_animals")
    if number_of_animals < 1:
        raise ValidationError("number_of_animals", "must be at least 1.")

    if not line_items:
        raise ValidationError("line_items", "at least one feed item is required.")

    parsed = [_coerce_line_item(raw, index) for index, raw in enumerate(line_items)]

    total_quantity = Decimal("0")
    total_cost = Decimal("0")
    total_bags = 0
    items = []

    for index, line in enumerate(parsed):
        feed_item = catalog.get(line.feed_item_id)
        if feed_item is None:
            raise ValidationError(
                f"line_items[{index}].feed_item_id",
                f"feed item {line.feed_item_id} not found.",
            )
        if feed_item.quantity_per_bag <= 0:
            raise ValidationError(
                f"line_items[{index}].feed_item_id",
                f"feed item {line.feed_item_id} has no usable bag size.",
            )

        daily_quantity = line.quantity_per_time * line.number_of_times_per_day * number_of_animals
        period_quantity = daily_quantity * number_of_days
        bags = int((period_quantity / feed_item.quantity_per_bag).to_integral_value(rounding=ROUND_CEILING))
        cost = bags * feed_item.price_per_bag

        total_quantity += period_quantity
        total_bags += bags
        total_cost += cost

        items.append(ItemRequirement(
            feed_item_id=feed_item.id,
            item_name=feed_item.name,
            quantity_per_time=line.quantity_per_time,
            number_of_times_per_day=line.number_of_times_per_day,
            quantity_per_bag=feed_item.quantity_per_bag,
            price_per_bag=feed_item.price_per_bag,
            quantity_required=round_money(period_quantity),
            bags_required=bags,
            cost_required=round_money(cost),
        ))

    return RequirementPreview(
        start_date=start_date,
        end_date=end_date,
        number_of_animals=number_of_animals,
        number_of_days=number_of_days,
        items=tuple(items),
        total_quantity_required=round_money(total_quantity),
        total_bags=total_bags,
        total_cost=round_money(total_cost),
    )
