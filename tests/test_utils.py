import pytest

from utils import format_native, is_valid_address, plural, short_address, to_whole_units


@pytest.mark.parametrize("address", [
    "0x1234567890abcdef1234567890abcdef12345678",
    "0xABCDEFABCDEFABCDEFABCDEFABCDEFABCDEFABCD",
    "0x0000000000000000000000000000000000000000",
])
def test_valid_addresses(address):
    assert is_valid_address(address)


@pytest.mark.parametrize("address", [
    "",
    "0x",
    "1234567890abcdef1234567890abcdef12345678",
    "0x1234567890abcdef1234567890abcdef1234567",
    "0x1234567890abcdef1234567890abcdef123456789",
    "0xg234567890abcdef1234567890abcdef12345678",
    " 0x1234567890abcdef1234567890abcdef12345678",
    "0x1234567890abcdef1234567890abcdef12345678\n",
    "wizard.eth",
    None,
    12345,
])
def test_invalid_addresses(address):
    assert not is_valid_address(address)


def test_format_native_truncates_instead_of_rounding():
    assert format_native(5_200_000_000_000_000_000) == "5 STT"
    assert format_native("5999999999999999999") == "5 STT"
    assert format_native(0) == "0 STT"


def test_to_whole_units_keeps_big_integers_exact():
    huge = 123456789 * 10**18 + 1
    assert to_whole_units(huge) == 123456789


def test_short_address():
    assert short_address("0x1234567890abcdef1234567890abcdef12345678") == "0x1234...5678"
    assert short_address("0x12") == "0x12"


def test_plural():
    assert plural(1, "transaction") == "1 transaction"
    assert plural(0, "transaction") == "0 transactions"
    assert plural(12, "NFT") == "12 NFTs"
