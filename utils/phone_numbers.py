"""
Cameroon phone number helpers and mobile-money correspondent resolution.

Numbers are handled in E.164 form (+237 followed by 9 digits). pawaPay wants the
MSISDN without the leading "+".
"""
import re
from typing import Optional

COUNTRY_CODE = "237"
CAMEROON_PHONE_PATTERN = re.compile(r"^\+237[0-9]{9}$")

ORANGE_CMR = "ORANGE_CMR"
MTN_MOMO_CMR = "MTN_MOMO_CMR"

CORRESPONDENTS = {
    ORANGE_CMR: "Orange Money Cameroun",
    MTN_MOMO_CMR: "MTN Mobile Money Cameroun",
}

# Short names stored on payment rows and shown in payment history
PAYMENT_METHODS = {
    ORANGE_CMR: "Orange Money",
    MTN_MOMO_CMR: "MTN Money",
}

# Leading two digits of the national significant number.
# 65 is allocated to both operators in practice; it resolves to Orange and
# callers that know better pass the correspondent explicitly.
OPERATOR_PREFIXES = {
    "69": ORANGE_CMR,
    "65": ORANGE_CMR,
    "66": ORANGE_CMR,
    "67": MTN_MOMO_CMR,
    "68": MTN_MOMO_CMR,
}
AMBIGUOUS_PREFIXES = frozenset({"65"})
DEFAULT_CORRESPONDENT = ORANGE_CMR

STATEMENT_DESCRIPTION_MAX_LENGTH = 22


def is_valid_cameroon_phone(phone: Optional[str]) -> bool:
    return bool(phone) and bool(CAMEROON_PHONE_PATTERN.match(phone))


def format_cameroon_phone(phone: str) -> str:
    """
    Normalize user input to +237XXXXXXXXX.

    Accepts "6 91 23 45 67", "237691234567", "+237 691-234-567" and so on.

    Raises:
        ValueError: if the input does not carry exactly 9 national digits
    """
    cleaned = re.sub(r"\D", "", phone or "")
    if cleaned.startswith(COUNTRY_CODE) and len(cleaned) == 12:
        cleaned = cleaned[len(COUNTRY_CODE):]
    if len(cleaned) == 9:
        return f"+{COUNTRY_CODE}{cleaned}"
    raise ValueError("Invalid Cameroon phone number format. Expected +237XXXXXXXXX")


def national_number(phone: str) -> str:
    cleaned = re.sub(r"\D", "", phone or "")
    if cleaned.startswith(COUNTRY_CODE) and len(cleaned) > 9:
        return cleaned[len(COUNTRY_CODE):]
    return cleaned


def resolve_correspondent(phone: str) -> str:
    """
    Guess the mobile-money operator from the number prefix.

    69/65/66 -> ORANGE_CMR, 67/68 -> MTN_MOMO_CMR. Unknown prefixes fall back
    to DEFAULT_CORRESPONDENT (Orange).
    """
    return OPERATOR_PREFIXES.get(national_number(phone)[:2], DEFAULT_CORRESPONDENT)


def is_ambiguous_prefix(phone: str) -> bool:
    return national_number(phone)[:2] in AMBIGUOUS_PREFIXES


def to_msisdn(phone: str) -> str:
    return phone.replace("+", "")


def sanitize_statement_description(description: Optional[str], fallback: str = "DULU") -> str:
    """
    pawaPay only accepts letters, digits and spaces, at most 22 characters.

    "DULU Pro (Extension)!" -> "DULU Pro Extension"
    """
    cleaned = re.sub(r"[^A-Za-z0-9 ]", "", description or "")
    cleaned = re.sub(r" +", " ", cleaned).strip()
    if not cleaned:
        cleaned = re.sub(r" +", " ", re.sub(r"[^A-Za-z0-9 ]", "", fallback)).strip()
    return cleaned[:STATEMENT_DESCRIPTION_MAX_LENGTH].rstrip()
