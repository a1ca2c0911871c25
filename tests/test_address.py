import pytest

from sender_sdk.address import ZERO_ADDRESS, from_word, is_valid, to_bytes, to_checksum, validate
from sender_sdk.errors import AddressError
from sender_sdk.utils.bytes import from_quantity, pad32, to_quantity
from sender_sdk.utils.hash import keccak256, keccak256_concat, keccak256_hex

EIP55_VECTORS = [
    "0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed",
    "0xfB6916095ca1df60bB79Ce92cE3Ea74c37c5d359",
    "0xdbF03B407c01E7cD3CBea99509d93f8DDDC8C6FB",
    "0xD1220A0cf47c7B9Be7A2E6BA89F429762e7b9aDb",
]


def test_keccak_known_values():
    assert keccak256_hex(b"") == "0xc5d2460186f7233c927e7db2dcc703c0e500b653ca82273b7bfad8045d85a470"
    assert keccak256_hex(b"abc", prefix=False) == "4e03657aea45a94fc7d47ba826c8d667c0d1e6e33a64a036ec44f58fa12d6c45"


def test_keccak_concat_equals_joined():
    assert keccak256_concat([b"ab", b"", b"c"]) == keccak256(b"abc")


@pytest.mark.parametrize("addr", EIP55_VECTORS)
def test_eip55_checksums(addr):
    assert to_checksum(addr.lower()) == addr
    assert to_checksum(addr.upper().replace("0X", "0x")) == addr
    assert validate(addr, strict=True)


def test_bad_checksum_is_rejected():
    good = EIP55_VECTORS[0]
    i = next(i for i, c in enumerate(good) if i >= 2 and c.isalpha())
    flipped = good[:i] + good[i].swapcase() + good[i + 1 :]
    assert flipped != good
    with pytest.raises(AddressError):
        to_bytes(flipped)
    assert not is_valid(flipped)


@pytest.mark.parametrize("bad", ["", "0x1234", "5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed", "0x" + "zz" * 20, 42])
def test_malformed_addresses(bad):
    assert not validate(bad)


def test_bytes_roundtrip_and_word_decoding():
    raw = bytes(range(20))
    assert to_bytes(to_checksum(raw)) == raw
    assert from_word(b"\x00" * 12 + raw) == to_checksum(raw)
    with pytest.raises(AddressError):
        from_word(b"\x01" + b"\x00" * 11 + raw)
    assert to_checksum(b"\x00" * 20) == ZERO_ADDRESS


def test_quantities_and_padding():
    assert to_quantity(0) == "0x0"
    assert to_quantity(26) == "0x1a"
    assert from_quantity("0x1a") == 26
    assert from_quantity("26") == 26
    assert pad32(b"\x01") == b"\x00" * 31 + b"\x01"
    assert pad32(b"\x01", right=True) == b"\x01" + b"\x00" * 31
    with pytest.raises(ValueError):
        to_quantity(-1)
