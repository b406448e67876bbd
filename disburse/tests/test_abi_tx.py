from __future__ import annotations

import pytest

from disburse import address as addrs
from disburse.abi import (RETURN_PREFIX, Method, decode_value, encode_value,
                          find_return, method_table, selector)
from disburse.errors import AbiError
from disburse.tx.encode import (assign_group_id, compute_group_id,
                                decode_unsigned, encode_unsigned, pack_signed,
                                sign_bytes, tx_id, unpack_signed)
from disburse.tx.types import (ApplicationCallTxn, AssetTransferTxn,
                               OnComplete, PaymentTxn, SuggestedParams)

A = addrs.encode(bytes([1] * 32))
B = addrs.encode(bytes([2] * 32))


def test_method_parsing_and_selector():
    m = Method.from_signature("create_scheme(pay,string,uint64,uint64,uint64)uint64")
    assert m.name == "create_scheme"
    assert m.txn_arg_count == 1
    assert [a.type for a in m.value_args] == ["string", "uint64", "uint64", "uint64"]
    assert m.returns == "uint64"
    assert m.selector == selector(m.signature)
    assert len(m.selector) == 4


@pytest.mark.parametrize(
    "sig",
    ["no_parens", "f(uint256)void", "f(uint64)account", "9bad()void"],
)
def test_bad_signatures(sig):
    with pytest.raises(AbiError):
        Method.from_signature(sig)


def test_value_codec():
    assert encode_value("uint64", 5) == (5).to_bytes(8, "big")
    assert encode_value("bool", True) == b"\x80"
    assert decode_value("string", encode_value("string", "héllo")) == "héllo"
    assert decode_value("address", encode_value("address", A)) == A
    assert decode_value("byte[]", encode_value("byte[]", b"\x00\x01")) == b"\x00\x01"


@pytest.mark.parametrize(
    "abi_type,value",
    [("uint64", -1), ("uint64", 1 << 64), ("uint8", 256), ("uint64", True), ("string", b"raw"), ("address", "dsb1nope")],
)
def test_encode_rejects(abi_type, value):
    with pytest.raises(AbiError):
        encode_value(abi_type, value)


def test_decode_rejects_bad_length_prefix():
    with pytest.raises(AbiError):
        decode_value("string", b"\x00\x05abc")


def test_return_is_last_prefixed_line():
    logs = [RETURN_PREFIX + b"\x01", b"evt:xx", RETURN_PREFIX + (9).to_bytes(8, "big")]
    assert find_return(logs) == (9).to_bytes(8, "big")
    m = Method.from_signature("f()uint64")
    assert m.decode_return(logs) == 9
    assert Method.from_signature("g()void").decode_return([]) is None
    with pytest.raises(AbiError):
        m.decode_return([b"evt:"])


def test_method_table_lookup():
    table = method_table(["a()void", "b(uint64)void"])
    assert table[selector("b(uint64)void")].name == "b"


# --- transaction encoding ---------------------------------------------------

PARAMS = SuggestedParams(min_fee=1000, first_valid=10, last_valid=1010, genesis_id="disburse-devnet-v1")


def _pay(amount: int = 5) -> PaymentTxn:
    t = PaymentTxn(sender=A, receiver=B, amount=amount)
    t.apply_params(PARAMS)
    return t


def test_body_omits_empty_fields():
    raw = encode_unsigned(_pay())
    back = decode_unsigned(raw)
    assert isinstance(back, PaymentTxn)
    assert back.note == b"" and back.group is None
    assert encode_unsigned(back) == raw


def test_sign_bytes_are_domain_separated():
    t = _pay()
    assert sign_bytes(t).startswith(b"TX")
    assert tx_id(t).startswith("0x")


def test_explicit_fee_kept():
    t = PaymentTxn(sender=A, receiver=B, amount=1, fee=7000)
    t.apply_params(PARAMS, multiplier=2)
    assert t.fee == 7000
    u = PaymentTxn(sender=A, receiver=B, amount=1)
    u.apply_params(PARAMS, multiplier=2)
    assert u.fee == 2000


def test_group_id_commits_every_member():
    group = [_pay(1), _pay(2)]
    gid = assign_group_id(group)
    assert all(t.group == gid for t in group)
    assert compute_group_id(group) == gid

    other = [_pay(1), _pay(3)]
    assert compute_group_id(other) != gid


def test_app_call_roundtrip_keeps_boxes_and_on_complete():
    call = ApplicationCallTxn(
        sender=A,
        app_id=1001,
        on_complete=OnComplete.OPT_IN,
        app_args=[b"\x01\x02\x03\x04", b"\x00" * 8],
        accounts=[B],
        boxes=[(0, b"scheme_" + bytes(8))],
    )
    call.apply_params(PARAMS)
    back = decode_unsigned(encode_unsigned(call))
    assert back.on_complete is OnComplete.OPT_IN
    assert back.boxes == [(0, b"scheme_" + bytes(8))]
    assert back.accounts == [B]
    assert tx_id(back) == tx_id(call)


def test_signed_envelope():
    t = AssetTransferTxn(sender=A, asset_id=7, receiver=A)
    t.apply_params(PARAMS)
    blob = pack_signed(encode_unsigned(t), b"s" * 64)
    txn, sig = unpack_signed(blob)
    assert sig == b"s" * 64
    assert tx_id(txn) == tx_id(t)
    with pytest.raises(ValueError):
        unpack_signed(encode_unsigned(t))
