"""Receipt rendering.

Builds the payload handed to the notification dispatcher: a structured dict
plus a plain-text rendering used for print previews and email bodies.
"""
from decimal import Decimal, ROUND_DOWN
from typing import List

from PosCheckout.models import SaleSnapshot, money, to_decimal

CURRENCY_SYMBOL = "₹"

_ONES = ["", "One", "Two", "Three", "Four", "Five", "Six", "Seven", "Eight", "Nine"]
_TEENS = ["Ten", "Eleven", "Twelve", "Thirteen", "Fourteen", "Fifteen", "Sixteen",
          "Seventeen", "Eighteen", "Nineteen"]
_TENS = ["", "", "Twenty", "Thirty", "Forty", "Fifty", "Sixty", "Seventy", "Eighty", "Ninety"]


def _group_indian(digits: str) -> str:
    # last three digits, then groups of two: 12,34,567
    if len(digits) <= 3:
        return digits
    head, tail = digits[:-3], digits[-3:]
    groups = []
    while len(head) > 2:
        groups.insert(0, head[-2:])
        head = head[:-2]
    if head:
        groups.insert(0, head)
    return ",".join(groups + [tail])


def format_currency(amount) -> str:
    """Format an amount as rupees with Indian digit grouping, e.g. ``₹1,23,456.00``."""
    amount = money(amount)
    sign = "-" if amount < 0 else ""
    rupees, paise = f"{abs(amount):.2f}".split(".")
    return f"{sign}{CURRENCY_SYMBOL}{_group_indian(rupees)}.{paise}"


def _convert(n: int) -> str:
    if n < 10:
        return _ONES[n]
    if n < 20:
        return _TEENS[n - 10]
    if n < 100:
        return _TENS[n // 10] + (" " + _ONES[n % 10] if n % 10 else "")
    if n < 1000:
        return _ONES[n // 100] + " Hundred" + (" " + _convert(n % 100) if n % 100 else "")
    if n < 100000:
        return _convert(n // 1000) + " Thousand" + (" " + _convert(n % 1000) if n % 1000 else "")
    if n < 10000000:
        return _convert(n // 100000) + " Lakh" + (" " + _convert(n % 100000) if n % 100000 else "")
    return _convert(n // 10000000) + " Crore" + (" " + _convert(n % 10000000) if n % 10000000 else "")


def amount_in_words(amount) -> str:
    """Spell out an amount using the Indian numbering system.

    >>> amount_in_words(Decimal("22656.50"))
    'Rupees Twenty Two Thousand Six Hundred Fifty Six and Fifty Paise'
    """
    amount = abs(money(amount))
    rupees = int(amount.to_integral_value(rounding=ROUND_DOWN))
    paise = int((amount - rupees) * 100)

    result = "Rupees " + (_convert(rupees) if rupees else "Zero")
    if paise > 0:
        result += " and " + _convert(paise) + " Paise"
    return result


def _render_text(snapshot: SaleSnapshot) -> str:
    totals = snapshot.totals
    payment = snapshot.payment_details
    lines: List[str] = [
        f"Bill #{snapshot.quotation_number}",
        snapshot.created_at.strftime("%d %b %Y %H:%M"),
    ]
    if snapshot.buyer is not None:
        lines.append(f"Buyer: {snapshot.buyer.name} ({snapshot.buyer.phone})")
    lines.append("-" * 40)
    for item in snapshot.items:
        line_total = to_decimal(item.price) * item.quantity
        lines.append(f"{item.product.name} [{item.product.sku}]")
        lines.append(f"  {item.quantity} x {format_currency(item.price)} = {format_currency(line_total)}")
    lines.append("-" * 40)
    lines.append(f"Subtotal: {format_currency(totals.subtotal)}")
    if totals.discount_amount > 0:
        lines.append(f"Discount: -{format_currency(totals.discount_amount)}")
    if totals.tax_enabled:
        lines.append(f"GST ({totals.tax_rate.normalize():f}%): {format_currency(totals.tax_amount)}")
    lines.append(f"Total: {format_currency(totals.final_total)}")
    lines.append(amount_in_words(totals.final_total))
    lines.append(f"Paid: {format_currency(payment.paid_amount)}")
    if payment.pending_amount > 0:
        lines.append(f"Pending: {format_currency(payment.pending_amount)}")
    return "\n".join(lines)


def build_receipt(snapshot: SaleSnapshot) -> dict:
    payload = snapshot.model_dump(mode="json")
    payload["amount_in_words"] = amount_in_words(snapshot.totals.final_total)
    payload["text"] = _render_text(snapshot)
    return payload
