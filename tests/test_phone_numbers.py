import pytest

from utils.phone_numbers import (
    MTN_MOMO_CMR,
    ORANGE_CMR,
    format_cameroon_phone,
    is_ambiguous_prefix,
    is_valid_cameroon_phone,
    resolve_correspondent,
    sanitize_statement_description,
    to_msisdn,
)


@pytest.mark.parametrize("phone,expected", [
    ("+237691234567", ORANGE_CMR),
    ("+237661234567", ORANGE_CMR),
    ("+237651234567", ORANGE_CMR),
    ("+237671234567", MTN_MOMO_CMR),
    ("+237681234567", MTN_MOMO_CMR),
    ("+237621234567", ORANGE_CMR),
])
def test_resolve_correspondent(phone, expected):
    assert resolve_correspondent(phone) == expected


def test_prefix_65_is_flagged_ambiguous():
    assert is_ambiguous_prefix("+237651234567")
    assert not is_ambiguous_prefix("+237691234567")


def test_phone_validation():
    assert is_valid_cameroon_phone("+237691234567")
    assert not is_valid_cameroon_phone("691234567")
    assert not is_valid_cameroon_phone("+23769123456")
    assert not is_valid_cameroon_phone("+2376912345678")
    assert not is_valid_cameroon_phone("")
    assert not is_valid_cameroon_phone(None)


def test_format_cameroon_phone():
    assert format_cameroon_phone("6 91 23 45 67") == "+237691234567"
    assert format_cameroon_phone("237691234567") == "+237691234567"
    assert format_cameroon_phone("+237 691-234-567") == "+237691234567"
    with pytest.raises(ValueError):
        format_cameroon_phone("12345")


def test_to_msisdn_strips_plus():
    assert to_msisdn("+237691234567") == "237691234567"


def test_sanitize_statement_description():
    assert sanitize_statement_description("DULU Pro (Extension)!") == "DULU Pro Extension"
    assert sanitize_statement_description("Abonnement DULU Premium mensuel") == "Abonnement DULU Premiu"
    assert sanitize_statement_description("!!!", fallback="DULU pro") == "DULU pro"
    assert len(sanitize_statement_description("x" * 40)) == 22
