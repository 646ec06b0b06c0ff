"""Region normalization and postal-code format rules.

Pure functions: nothing here performs I/O or raises on bad input.
"""

import re
from dataclasses import dataclass

STATE_REQUIRED_COUNTRIES = ("US", "CA", "AU", "JP")

_REGION_CODES = {
    # United States
    "alabama": "AL",
    "alaska": "AK",
    "arizona": "AZ",
    "arkansas": "AR",
    "california": "CA",
    "colorado": "CO",
    "connecticut": "CT",
    "delaware": "DE",
    "florida": "FL",
    "georgia": "GA",
    "hawaii": "HI",
    "idaho": "ID",
    "illinois": "IL",
    "indiana": "IN",
    "iowa": "IA",
    "kansas": "KS",
    "kentucky": "KY",
    "louisiana": "LA",
    "maine": "ME",
    "maryland": "MD",
    "massachusetts": "MA",
    "michigan": "MI",
    "minnesota": "MN",
    "mississippi": "MS",
    "missouri": "MO",
    "montana": "MT",
    "nebraska": "NE",
    "nevada": "NV",
    "new hampshire": "NH",
    "new jersey": "NJ",
    "new mexico": "NM",
    "new york": "NY",
    "north carolina": "NC",
    "north dakota": "ND",
    "ohio": "OH",
    "oklahoma": "OK",
    "oregon": "OR",
    "pennsylvania": "PA",
    "rhode island": "RI",
    "south carolina": "SC",
    "south dakota": "SD",
    "tennessee": "TN",
    "texas": "TX",
    "utah": "UT",
    "vermont": "VT",
    "virginia": "VA",
    "washington": "WA",
    "west virginia": "WV",
    "wisconsin": "WI",
    "wyoming": "WY",
    # Canada
    "alberta": "AB",
    "british columbia": "BC",
    "manitoba": "MB",
    "new brunswick": "NB",
    "newfoundland and labrador": "NL",
    "nova scotia": "NS",
    "ontario": "ON",
    "prince edward island": "PE",
    "quebec": "QC",
    "saskatchewan": "SK",
    "northwest territories": "NT",
    "nunavut": "NU",
    "yukon": "YT",
}


@dataclass(frozen=True)
class PostalCodeFormat:
    pattern: re.Pattern
    example: str
    description: str


def _fmt(pattern: str, example: str, description: str, flags: int = 0) -> PostalCodeFormat:
    return PostalCodeFormat(re.compile(pattern, flags), example, description)


POSTAL_CODE_FORMATS = {
    # North America
    "US": _fmt(r"^\d{5}(?:-\d{4})?$", "90210 or 90210-1234", "5 digits or 5+4 digits (ZIP+4)"),
    "CA": _fmt(r"^[A-Z]\d[A-Z]\s?\d[A-Z]\d$", "M5V 3A8", "A1A 1A1 format", re.IGNORECASE),
    "MX": _fmt(r"^\d{5}$", "01000", "5 digits"),
    # Europe
    "GB": _fmt(r"^[A-Z]{1,2}\d[A-Z\d]?\s?\d[A-Z]{2}$", "SW1A 1AA", "UK postcode format", re.IGNORECASE),
    "DE": _fmt(r"^\d{5}$", "10115", "5 digits"),
    "FR": _fmt(r"^\d{5}$", "75001", "5 digits"),
    "IT": _fmt(r"^\d{5}$", "00100", "5 digits"),
    "ES": _fmt(r"^\d{5}$", "28001", "5 digits"),
    "NL": _fmt(r"^\d{4}\s?[A-Z]{2}$", "1012 AB", "4 digits + 2 letters", re.IGNORECASE),
    "BE": _fmt(r"^\d{4}$", "1000", "4 digits"),
    "CH": _fmt(r"^\d{4}$", "8001", "4 digits"),
    "SE": _fmt(r"^\d{5}$", "10216", "5 digits"),
    "NO": _fmt(r"^\d{4}$", "0150", "4 digits"),
    "DK": _fmt(r"^\d{4}$", "1000", "4 digits"),
    "AT": _fmt(r"^\d{4}$", "1010", "4 digits"),
    "CZ": _fmt(r"^\d{3}\s?\d{2}$", "110 00", "3 digits + 2 digits"),
    "PL": _fmt(r"^\d{2}-\d{3}$", "00-001", "2 digits-3 digits"),
    # Asia-Pacific
    "AU": _fmt(r"^\d{4}$", "2000", "4 digits"),
    "JP": _fmt(r"^\d{3}-\d{4}$", "100-0001", "3 digits-4 digits"),
    "NZ": _fmt(r"^\d{4}$", "1010", "4 digits"),
    "CN": _fmt(r"^\d{6}$", "100000", "6 digits"),
    "IN": _fmt(r"^\d{6}$", "110001", "6 digits (PIN code)"),
    "SG": _fmt(r"^\d{6}$", "018956", "6 digits"),
    # South America
    "BR": _fmt(r"^\d{5}-?\d{3}$", "01310-100", "5 digits-3 digits"),
    "AR": _fmt(r"^[A-Z]?\d{4}[A-Z]?$", "C1425", "4 digits, optional letter prefix/suffix", re.IGNORECASE),
}


@dataclass(frozen=True)
class PostalCodeCheck:
    valid: bool
    message: str | None = None


def normalize_region(value: str | None) -> str:
    """Map a free-text US state or Canadian province to its 2-letter code.

    Codes pass through untouched, as does anything unrecognized.
    """
    if not value:
        return ""

    if len(value) == 2 and value == value.upper():
        return value

    return _REGION_CODES.get(value.strip().lower(), value)


def state_required(country: str | None) -> bool:
    return (country or "") in STATE_REQUIRED_COUNTRIES


def validate_postal_code(code: str | None, country: str | None) -> PostalCodeCheck:
    """Check ``code`` against the postal format of ``country``.

    Countries without a known format accept any non-empty code.
    """
    if not code or not code.strip() or not country:
        return PostalCodeCheck(valid=False, message="ZIP code and country are required")

    fmt = POSTAL_CODE_FORMATS.get(country.upper())
    if fmt is None:
        return PostalCodeCheck(valid=True)

    if not fmt.pattern.match(code.strip()):
        return PostalCodeCheck(
            valid=False,
            message=(
                f"Invalid {country.upper()} postal code format. "
                f"Expected: {fmt.description} (e.g., {fmt.example})"
            ),
        )

    return PostalCodeCheck(valid=True)


_CANADIAN_CODES = frozenset({"AB", "BC", "MB", "NB", "NL", "NS", "ON", "PE", "QC", "SK", "NT", "NU", "YT"})


def _display_name(key: str) -> str:
    return " ".join(word if word == "and" else word.capitalize() for word in key.split())


def known_regions(country: str | None) -> list[tuple[str, str]]:
    """``(code, name)`` pairs for the US states or Canadian provinces we know."""
    country = (country or "").upper()
    if country == "US":
        return [(code, _display_name(key)) for key, code in _REGION_CODES.items() if code not in _CANADIAN_CODES]
    if country == "CA":
        return [(code, _display_name(key)) for key, code in _REGION_CODES.items() if code in _CANADIAN_CODES]
    return []
