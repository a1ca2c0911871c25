import pytest

from sender_sdk.abi import (
    canonical_signature,
    canonical_type,
    decode,
    encode,
    encode_call,
    function_selector,
    normalize_abi,
    parse_human_signature,
)
from sender_sdk.errors import AbiError

from .conftest import ALICE, TOKEN_ABI


def _word(n: int) -> bytes:
    return n.to_bytes(32, "big")


def test_well_known_selectors():
    assert function_selector("transfer(address,uint256)").hex() == "a9059cbb"
    assert function_selector("balanceOf(address)").hex() == "70a08231"
    assert function_selector("approve(address, uint)").hex() == "095ea7b3"


def test_canonical_types():
    assert canonical_type("uint") == "uint256"
    assert canonical_type("int[] [2]") == "int256[][2]"
    assert canonical_type("(uint, (bool,bytes))[]") == "(uint256,(bool,bytes))[]"
    assert canonical_signature("f( uint , address[] )") == "f(uint256,address[])"
    for bad in ("uint7", "bytes33", "fixed128x18", "(uint"):
        with pytest.raises(AbiError):
            canonical_type(bad)


def test_static_encoding_layout():
    data = encode(["uint256", "bool", "address"], [1, True, ALICE])
    assert data == _word(1) + _word(1) + b"\x00" * 12 + bytes.fromhex(ALICE[2:])


def test_dynamic_encoding_layout():
    data = encode(["uint256", "string"], [7, "abc"])
    assert data == _word(7) + _word(64) + _word(3) + b"abc" + b"\x00" * 29


def test_negative_int_and_nested_roundtrip():
    types = ["int8", "bytes", "uint256[]", "(address,string)[2]", "bytes4"]
    values = [-3, b"\x01\x02", [1, 2, 3], [(ALICE, "x"), (ALICE, "")], b"\xde\xad\xbe\xef"]
    out = decode(types, encode(types, values))
    assert out[0] == -3
    assert out[1] == b"\x01\x02"
    assert out[2] == [1, 2, 3]
    assert out[3] == [(ALICE, "x"), (ALICE, "")]
    assert out[4] == b"\xde\xad\xbe\xef"


@pytest.mark.parametrize(
    "types,values",
    [
        (["uint8"], [256]),
        (["uint256"], [-1]),
        (["bool"], [1]),
        (["address"], ["0x1234"]),
        (["bytes2"], [b"\x00\x01\x02"]),
        (["uint256", "uint256"], [1]),
    ],
)
def test_encoding_rejects_bad_values(types, values):
    with pytest.raises(AbiError):
        encode(types, values)


def test_decode_rejects_truncated_data():
    with pytest.raises(AbiError):
        decode(["uint256", "uint256"], _word(1))
    with pytest.raises(AbiError):
        decode(["string"], _word(32) + _word(100))


def test_encode_call_prefixes_selector():
    payload = encode_call("transfer(address,uint256)", [ALICE, 5])
    assert payload[:4].hex() == "a9059cbb"
    assert decode(["address", "uint256"], payload[4:]) == (ALICE, 5)


def test_normalize_json_abi_skips_events():
    fns = normalize_abi(TOKEN_ABI)
    assert set(fns) == {"balanceOf", "transfer"}
    transfer = fns["transfer"][0]
    assert transfer.signature == "transfer(address,uint256)"
    assert transfer.outputs == ("bool",)
    assert not transfer.payable


def test_human_readable_declarations():
    fn = parse_human_signature("function deposit(uint amount) payable returns (uint256 total, bool)")
    assert fn.signature == "deposit(uint256)"
    assert fn.outputs == ("uint256", "bool")
    assert fn.payable
    assert fn.decode_output(encode(["uint256", "bool"], [9, False])) == (9, False)
    assert parse_human_signature("count() view returns (uint256)").decode_output(_word(4)) == 4


def test_overloads_are_kept():
    fns = normalize_abi(["function f(uint256)", "function f(uint256,address)", "g()"])
    assert [f.signature for f in fns["f"]] == ["f(uint256)", "f(uint256,address)"]
    assert "g" in fns
