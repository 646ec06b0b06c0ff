"""Address and contact validation rules applied before rates and submission."""

import re
from collections.abc import Mapping
from dataclasses import dataclass

from checkout.address.normalizer import state_required, validate_postal_code

REQUIRED_CUSTOMER_FIELDS = ("name", "email", "phone", "address1", "city", "zip", "country")
MIN_PHONE_DIGITS = 7

_FIELD_LABELS = {
    "name": "Full name",
    "email": "Email",
    "phone": "Phone number",
    "address1": "Street address",
    "city": "City",
    "zip": "ZIP/Postal code",
    "country": "Country",
}

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


@dataclass(frozen=True)
class FieldError:
    field: str
    message: str


def _values(info) -> Mapping[str, str]:
    if isinstance(info, Mapping):
        return {key: value or "" for key, value in info.items()}
    return info.as_dict()


def phone_digits(phone: str | None) -> str:
    return re.sub(r"\D", "", phone or "")


def missing_required_fields(info) -> list[str]:
    values = _values(info)
    return [field for field in REQUIRED_CUSTOMER_FIELDS if not values.get(field, "").strip()]


def required_field_errors(info) -> list[FieldError]:
    return [FieldError(field, f"{_FIELD_LABELS[field]} is required") for field in missing_required_fields(info)]


def validate_customer_info(info) -> list[FieldError]:
    values = _values(info)
    errors = []

    if len(values.get("name", "").strip()) < 2:
        errors.append(FieldError("name", "Full name is required (at least 2 characters)"))

    email = values.get("email", "")
    if not email:
        errors.append(FieldError("email", "Email is required"))
    elif not _EMAIL_RE.match(email):
        errors.append(FieldError("email", "Invalid email format"))

    return errors


def validate_shipping_address(info, require_phone: bool = True) -> list[FieldError]:
    """Collect every problem with the shipping address, in the order submission checks them."""
    values = _values(info)
    country = values.get("country", "")
    errors = []

    if not country:
        errors.append(FieldError("country", "Country is required"))

    if require_phone:
        if not values.get("phone"):
            errors.append(FieldError("phone", "Phone number is required"))
        elif len(phone_digits(values["phone"])) < MIN_PHONE_DIGITS:
            errors.append(FieldError("phone", f"Phone number must have at least {MIN_PHONE_DIGITS} digits"))

    if country and state_required(country) and not values.get("state"):
        errors.append(FieldError("state", f"State/Province is required for {country}"))

    if not values.get("address1"):
        errors.append(FieldError("address1", "Street address is required for accurate shipping rates"))

    if not values.get("city"):
        errors.append(FieldError("city", "City is required for accurate shipping rates"))

    if not values.get("zip"):
        errors.append(FieldError("zip", "ZIP/Postal code is required for accurate shipping rates"))
    elif country:
        check = validate_postal_code(values["zip"], country)
        if not check.valid:
            errors.append(FieldError("zip", check.message or "Invalid ZIP/Postal code format"))

    return errors


def can_fetch_shipping_rates(info) -> bool:
    """True once the address is complete enough to quote carrier rates.

    The recipient name is optional for a quote.
    """
    values = _values(info)
    if not values.get("country"):
        return False
    if state_required(values["country"]) and not values.get("state"):
        return False
    return all(values.get(field) for field in ("address1", "city", "zip"))


def summarize(errors: list[FieldError]) -> str:
    if not errors:
        return ""
    if len(errors) == 1:
        return errors[0].message
    lines = "\n".join(f"• {error.message}" for error in errors)
    return f"Please fix the following:\n{lines}"


def as_messages(errors: list[FieldError]) -> dict[str, list[str]]:
    """Shape errors the way ``ValidationError`` expects them."""
    messages: dict[str, list[str]] = {}
    for error in errors:
        messages.setdefault(error.field, []).append(error.message)
    return messages
