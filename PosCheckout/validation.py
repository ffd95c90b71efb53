"""Buyer details validation for counter sales."""
import logging
import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from pydantic import EmailStr, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from PosCheckout.enums import CustomerSegment, PaymentStatus
from PosCheckout.exceptions import ValidationError
from PosCheckout.models import BuyerDetails, ZERO, money

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CountryRule:
    code: str
    name: str
    dialing_code: str
    min_digits: int
    max_digits: int


DEFAULT_COUNTRY = "IN"

COUNTRIES: Dict[str, CountryRule] = {
    "IN": CountryRule("IN", "India", "91", 10, 10),
    "US": CountryRule("US", "United States", "1", 8, 12),
    "GB": CountryRule("GB", "United Kingdom", "44", 8, 12),
    "AE": CountryRule("AE", "United Arab Emirates", "971", 8, 12),
    "SG": CountryRule("SG", "Singapore", "65", 8, 12),
}

_NON_DIGITS = re.compile(r"\D")
_EMAIL = TypeAdapter(EmailStr)


def get_country(code: Optional[str]) -> CountryRule:
    return COUNTRIES.get((code or DEFAULT_COUNTRY).upper(), COUNTRIES[DEFAULT_COUNTRY])


def format_e164(country: str, national_number: str) -> str:
    return f"+{get_country(country).dialing_code}{_NON_DIGITS.sub('', national_number)}"


def split_e164(phone: str) -> Tuple[str, str]:
    """Split an E.164 number back into (country code, national number).

    The longest matching dialing code wins. Numbers with an unknown dialing
    code are returned against the default country with their digits intact.
    """
    digits = _NON_DIGITS.sub("", phone)
    for rule in sorted(COUNTRIES.values(), key=lambda r: len(r.dialing_code), reverse=True):
        if digits.startswith(rule.dialing_code):
            return rule.code, digits[len(rule.dialing_code):]
    return DEFAULT_COUNTRY, digits


def is_valid_email(email: str) -> bool:
    try:
        _EMAIL.validate_python(email.strip())
    except PydanticValidationError:
        return False
    return True


class BuyerDetailsValidator:
    """Checks buyer details captured for a counter sale.

    All violations are collected and raised together as one ValidationError.
    On success the details are returned with the phone number in E.164 form.
    """

    def validate(self, details: BuyerDetails, segment: CustomerSegment, final_total) -> BuyerDetails:
        errors: List[Tuple[str, str]] = []
        final_total = money(final_total)

        if not details.buyer_name.strip():
            errors.append(("buyer_name", "Please enter buyer name"))

        rule = get_country(details.country)
        phone = details.buyer_phone.strip()
        if phone.startswith("+"):
            country_code, national = split_e164(phone)
            rule = get_country(country_code)
        else:
            national = _NON_DIGITS.sub("", phone)

        if not national:
            errors.append(("buyer_phone", "Please enter phone number"))
        elif not rule.min_digits <= len(national) <= rule.max_digits:
            expected = str(rule.min_digits) if rule.min_digits == rule.max_digits \
                else f"{rule.min_digits}-{rule.max_digits}"
            errors.append(("buyer_phone", f"Phone number must be {expected} digits"))

        if details.buyer_email and not is_valid_email(details.buyer_email):
            errors.append(("buyer_email", "Please enter a valid email address"))

        if segment == CustomerSegment.WHOLESALER:
            if not details.buyer_categories:
                errors.append(("buyer_categories", "Please select at least one product category"))
            if details.payment_status == PaymentStatus.PARTIALLY_PAID:
                paid = money(details.paid_amount)
                if not ZERO < paid < final_total:
                    errors.append((
                        "paid_amount",
                        "For partial payment, please enter an amount greater than 0 and less than the total",
                    ))
            if details.payment_status == PaymentStatus.CANCELLED:
                errors.append(("payment_status", "A cancelled sale cannot be completed"))

        effective_status = details.payment_status if segment == CustomerSegment.WHOLESALER else PaymentStatus.PAID
        if effective_status in (PaymentStatus.PAID, PaymentStatus.PARTIALLY_PAID) and details.payment_method is None:
            errors.append(("payment_method", "Please select a payment method"))

        if errors:
            logger.info("Buyer details rejected: %s", ", ".join(field for field, _ in errors))
            raise ValidationError.from_errors(errors)

        return details.with_changes(
            buyer_name=details.buyer_name.strip(),
            buyer_phone=format_e164(rule.code, national),
            buyer_email=details.buyer_email.strip() if details.buyer_email else None,
            country=rule.code,
        )
