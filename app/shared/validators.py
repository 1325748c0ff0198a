"""Shared validation utilities"""

import re
from datetime import datetime
from typing import Optional

STATE_ABBREVIATIONS = {
    "alabama": "AL", "alaska": "AK", "arizona": "AZ", "arkansas": "AR",
    "california": "CA", "colorado": "CO", "connecticut": "CT", "delaware": "DE",
    "florida": "FL", "georgia": "GA", "hawaii": "HI", "idaho": "ID",
    "illinois": "IL", "indiana": "IN", "iowa": "IA", "kansas": "KS",
    "kentucky": "KY", "louisiana": "LA", "maine": "ME", "maryland": "MD",
    "massachusetts": "MA", "michigan": "MI", "minnesota": "MN", "mississippi": "MS",
    "missouri": "MO", "montana": "MT", "nebraska": "NE", "nevada": "NV",
    "new hampshire": "NH", "new jersey": "NJ", "new mexico": "NM", "new york": "NY",
    "north carolina": "NC", "north dakota": "ND", "ohio": "OH", "oklahoma": "OK",
    "oregon": "OR", "pennsylvania": "PA", "rhode island": "RI", "south carolina": "SC",
    "south dakota": "SD", "tennessee": "TN", "texas": "TX", "utah": "UT",
    "vermont": "VT", "virginia": "VA", "washington": "WA", "west virginia": "WV",
    "wisconsin": "WI", "wyoming": "WY", "district of columbia": "DC",
}  # fmt: skip


def validate_date_string(value: Optional[str]) -> Optional[str]:
    """Validate a YYYY-MM-DD calendar date"""
    if value is None:
        return value
    try:
        datetime.strptime(value, "%Y-%m-%d")
    except ValueError:
        raise ValueError(f"Invalid date '{value}', expected YYYY-MM-DD") from None
    return value


def validate_time_string(value: Optional[str]) -> Optional[str]:
    """
    Validate a 24h HH:MM time of day.
    Accepts HH:MM:SS as sent by some clients and trims it to HH:MM.
    """
    if value is None:
        return value
    trimmed = value.strip()
    if re.fullmatch(r"\d{2}:\d{2}:\d{2}", trimmed):
        trimmed = trimmed[:5]
    try:
        datetime.strptime(trimmed, "%H:%M")
    except ValueError:
        raise ValueError(f"Invalid time '{value}', expected HH:MM") from None
    return trimmed


def normalize_state(state: Optional[str]) -> str:
    """
    Normalize a US state to its 2-letter code.
    Handles full names and "State 12345" strings with a trailing zip code.
    """
    if not state:
        return ""

    trimmed = state.strip()

    parts = trimmed.split()
    if len(parts) > 1 and re.fullmatch(r"\d{5}(-\d{4})?", parts[-1]):
        trimmed = " ".join(parts[:-1])

    if len(trimmed) == 2:
        return trimmed.upper()

    abbreviation = STATE_ABBREVIATIONS.get(trimmed.lower())
    if abbreviation:
        return abbreviation

    return trimmed[:2].upper()


def digits_only(phone: Optional[str]) -> str:
    """Strip formatting from a phone number"""
    return re.sub(r"\D", "", phone or "")
