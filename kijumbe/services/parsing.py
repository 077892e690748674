"""Normalization and validation of free-text user input."""

import re
from decimal import Decimal, InvalidOperation
from typing import Optional

MIN_AMOUNT = 10_000
MAX_AMOUNT = 1_000_000
MIN_MEMBERS = 2
MAX_MEMBERS = 50
MIN_PERSON_NAME = 2
MIN_GROUP_NAME = 3

AMOUNT_PATTERN = re.compile(r"(\d+(?:,\d+)*(?:\.\d+)?)")
LEADING_INT_PATTERN = re.compile(r"^\s*(\d+)")
GROUP_CODE_PATTERN = re.compile(r"^[A-Za-z0-9]+$")
WHITESPACE = re.compile(r"\s+")


def normalize(text: Optional[str]) -> str:
    """Trim, lowercase and collapse internal whitespace."""
    if not text:
        return ""
    return WHITESPACE.sub(" ", text.strip()).lower()


def extract_amount(text: str) -> Optional[int]:
    """First number in the text, commas stripped, decimals truncated."""
    match = AMOUNT_PATTERN.search(text or "")
    if not match:
        return None
    try:
        return int(Decimal(match.group(1).replace(",", "")))
    except InvalidOperation:
        return None


def parse_amount(text: str, minimum: int = MIN_AMOUNT, maximum: int = MAX_AMOUNT) -> Optional[int]:
    """Amount in TZS if present and within bounds, otherwise None (never clamped)."""
    amount = extract_amount(text)
    if amount is None or amount < minimum or amount > maximum:
        return None
    return amount


def has_digits(text: str) -> bool:
    return AMOUNT_PATTERN.search(text or "") is not None


def parse_member_count(text: str) -> Optional[int]:
    match = LEADING_INT_PATTERN.match(text or "")
    if not match:
        return None
    count = int(match.group(1))
    if count < MIN_MEMBERS or count > MAX_MEMBERS:
        return None
    return count


def parse_group_code(text: str) -> Optional[str]:
    code = (text or "").strip()
    if not code or not GROUP_CODE_PATTERN.match(code):
        return None
    return code.upper()


def valid_person_name(text: str) -> bool:
    return len((text or "").strip()) >= MIN_PERSON_NAME


def valid_group_name(text: str) -> bool:
    return len((text or "").strip()) >= MIN_GROUP_NAME


def format_tzs(amount: int) -> str:
    return f"TZS {amount:,}"
