"""
Supplier notification content for feed orders.

Only the message text and the WhatsApp deep link are produced here; sending
the message is left to whoever opens the link.
"""

import re
from dataclasses import dataclass
from urllib.parse import quote

from feed_orders.domain.exceptions import ValidationError

NON_DIGITS = re.compile(r"[^0-9]")
LOCAL_NUMBER_LENGTH = 10


@dataclass(frozen=True)
class Dispatch:
    message: str
    phone: str
    link: str


def format_supplier_phone(phone, default_country_code):
    """
    Normalises a supplier phone number to the digits-only international form
    wa.me expects: ``03001234567`` and ``3001234567`` both become
    ``923001234567`` with the default country code ``92``.
    """
    if not phone:
        return ""

    cleaned = NON_DIGITS.sub("", phone)
    if cleaned.startswith("0"):
        cleaned = default_country_code + cleaned[1:]
    if len(cleaned) == LOCAL_NUMBER_LENGTH:
        cleaned = default_country_code + cleaned
    return cleaned


def build_order_message(order, items, currency_label):
    lines = [
        "*Feed Order*",
        "",
        f"Period: {order.start_date.isoformat()} to {order.end_date.isoformat()} "
        f"({order.number_of_days} days)",
        f"Animals: {order.number_of_animals}",
        "",
        "*Items Required:*",
    ]
    for item in items:
        lines.append(
            f"• {item.item_name}: {item.quantity_required}kg "
            f"({item.bags_required} bags) - {currency_label} {item.cost_required}"
        )
    lines += [
        "",
        "*Total:*",
        f"Quantity: {order.total_quantity_required}kg",
        f"Bags: {order.bags_required}",
        f"Cost: {currency_label} {order.total_cost}",
    ]
    if order.supplier_phone:
        lines.append(f"Supplier: {order.supplier_phone}")
    return "\n".join(lines)


def build_dispatch(order, items, currency_label, default_country_code, base_url):
    phone = format_supplier_phone(order.supplier_phone, default_country_code)
    if not phone:
        raise ValidationError("supplier_phone", "a phone number with digits is required.")

    message = build_order_message(order, items, currency_label)
    link = f"{base_url}{phone}?text={quote(message, safe='')}"
    return Dispatch(message=message, phone=phone, link=link)
