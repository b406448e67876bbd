from __future__ import annotations

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from disburse import address as addrs
from disburse.errors import RecordSchemaError
from disburse.storage.records import (BENEFICIARY_BOX_SIZE, SCHEME_BOX_SIZE,
                                      BeneficiaryRecord, SchemeRecord,
                                      admin_key, beneficiary_key, box_mbr,
                                      pack_eligibility, parse_beneficiary_key,
                                      scheme_id_from_key, scheme_key,
                                      unpack_eligibility)
from disburse.types import BeneficiaryStatus, Eligibility, SchemeStatus

AUTH = addrs.encode(bytes(range(32)))


def _scheme(**over) -> SchemeRecord:
    base = dict(
        name="Merit Scholarship",
        budget=1_000_000,
        payout=50_000,
        deadline=1_770_000_000,
        status=SchemeStatus.ACTIVE,
        funded=600_000,
        spent=150_000,
        beneficiary_count=3,
        authority=AUTH,
        created_round=42,
    )
    base.update(over)
    return SchemeRecord(**base)


def test_scheme_record_fixed_size_and_version_byte():
    raw = _scheme().encode()
    assert len(raw) == SCHEME_BOX_SIZE
    assert raw[0] == SchemeRecord.VERSION


def test_scheme_record_roundtrip_to_read_model():
    rec = _scheme()
    scheme = SchemeRecord.decode(rec.encode()).to_scheme(7)
    assert scheme.scheme_id == 7
    assert scheme.name == "Merit Scholarship"
    assert scheme.status is SchemeStatus.ACTIVE
    assert scheme.authority == AUTH
    assert scheme.remaining == 450_000
    assert scheme.utilization == 15


def test_scheme_name_keeps_utf8():
    rec = _scheme(name="Bourse d'études")
    assert SchemeRecord.decode(rec.encode()).name == "Bourse d'études"


def test_scheme_name_too_long_rejected():
    with pytest.raises(RecordSchemaError):
        _scheme(name="x" * 65).encode()


def test_unknown_version_rejected():
    raw = bytearray(_scheme().encode())
    raw[0] = 2
    with pytest.raises(RecordSchemaError) as ei:
        SchemeRecord.decode(bytes(raw))
    assert ei.value.version == 2


def test_wrong_size_rejected():
    raw = _scheme().encode()
    with pytest.raises(RecordSchemaError) as ei:
        SchemeRecord.decode(raw[:-1])
    assert ei.value.size == SCHEME_BOX_SIZE - 1
    with pytest.raises(RecordSchemaError):
        BeneficiaryRecord.decode(raw)


def test_unknown_status_rejected():
    raw = bytearray(BeneficiaryRecord(status=BeneficiaryStatus.APPROVED).encode())
    raw[1] = 9
    with pytest.raises(RecordSchemaError):
        BeneficiaryRecord.decode(bytes(raw))


def test_beneficiary_record_roundtrip():
    rec = BeneficiaryRecord(status=BeneficiaryStatus.FUNDED, amount_received=50_000, registered_round=3, updated_round=9)
    raw = rec.encode()
    assert len(raw) == BENEFICIARY_BOX_SIZE
    back = BeneficiaryRecord.decode(raw).to_beneficiary(1, AUTH)
    assert back.status is BeneficiaryStatus.FUNDED
    assert back.amount_received == 50_000
    assert (back.registered_round, back.updated_round) == (3, 9)


def test_keys():
    assert scheme_id_from_key(scheme_key(12)) == 12
    assert parse_beneficiary_key(beneficiary_key(5, AUTH)) == (5, AUTH)
    assert admin_key(AUTH).startswith(b"admin_")
    with pytest.raises(RecordSchemaError):
        scheme_id_from_key(b"benef_" + bytes(8))


def test_box_reserve():
    assert box_mbr(SCHEME_BOX_SIZE) == 2500 + 400 * 256
    assert box_mbr(BENEFICIARY_BOX_SIZE) == 15_300


def test_eligibility_bit_order():
    assert pack_eligibility(Eligibility(sc=True)) == 0b1
    assert pack_eligibility(Eligibility(merit_qualified=True)) == 0b1000_0000
    assert unpack_eligibility(0b0001_0010) == Eligibility(st=True, female=True)
    with pytest.raises(RecordSchemaError):
        unpack_eligibility(256)


@settings(max_examples=64)
@given(st.integers(min_value=0, max_value=0xFF))
def test_eligibility_bits_survive(bits):
    assert pack_eligibility(unpack_eligibility(bits)) == bits
