"""
Tests for JSON-Cadence decoding and tagged argument encoding.
"""

from __future__ import annotations

import json
from decimal import Decimal

import pytest

from backend_flowindex.cadence.values import (
    ArrayArg,
    ConversionOptions,
    FixArg,
    IntArg,
    OptionalArg,
    StringArg,
    composite_addresses,
    decode_json_cadence,
    decode_value,
    encode_argument,
    to_argument_value,
)
from backend_flowindex.core.exceptions import ConversionError

EVENT = {
    "type": "Event",
    "value": {
        "id": "A.1654653399040a61.FlowToken.TokensDeposited",
        "fields": [
            {"name": "amount", "value": {"type": "UFix64", "value": "12.50000000"}},
            {"name": "to", "value": {"type": "Optional", "value": {"type": "Address", "value": "0x1D7E57AA55817448"}}},
            {"name": "memo", "value": {"type": "Optional", "value": None}},
        ],
    },
}


def test_scalars():
    assert decode_value({"type": "Bool", "value": True}) is True
    assert decode_value({"type": "UInt64", "value": "18446744073709551615"}) == 2**64 - 1
    assert decode_value({"type": "Int8", "value": "-3"}) == -3
    assert decode_value({"type": "String", "value": "hi"}) == "hi"
    assert decode_value({"type": "Void"}) is None
    assert decode_value({"type": "Address", "value": "0x01"}) == "0x0000000000000001"


def test_fixed_point_is_exact_decimal():
    value = decode_value({"type": "UFix64", "value": "0.10000000"})
    assert isinstance(value, Decimal)
    assert value + Decimal("0.2") == Decimal("0.3")


def test_collections():
    array = {"type": "Array", "value": [{"type": "Int", "value": "1"}, {"type": "Int", "value": "2"}]}
    assert decode_value(array) == [1, 2]
    dictionary = {
        "type": "Dictionary",
        "value": [{"key": {"type": "String", "value": "a"}, "value": {"type": "UFix64", "value": "1.0"}}],
    }
    assert decode_value(dictionary) == {"a": Decimal("1.0")}


def test_path_and_type():
    assert decode_value({"type": "Path", "value": {"domain": "storage", "identifier": "vault"}}) == "/storage/vault"
    assert decode_value({"type": "Type", "value": {"staticType": {"kind": "Int"}}}) == "Int"
    static = {"kind": "Resource", "typeID": "A.01.NFT.Collection"}
    assert decode_value({"type": "Type", "value": {"staticType": static}}) == "A.01.NFT.Collection"


def test_composite_fields():
    fields = decode_value(EVENT)
    assert fields == {
        "amount": Decimal("12.5"),
        "to": "0x1d7e57aa55817448",
        "memo": None,
    }


def test_composite_options():
    options = ConversionOptions(skip_empty_fields=True, include_type_id=True)
    fields = decode_value(EVENT, options)
    assert "memo" not in fields
    assert fields["_type"] == "A.1654653399040a61.FlowToken.TokensDeposited"


def test_composite_addresses_include_optionals():
    assert composite_addresses(EVENT) == {"to": "0x1d7e57aa55817448"}
    assert composite_addresses({"type": "Int", "value": "1"}) == {}


@pytest.mark.parametrize(
    "obj",
    [
        {"type": "Bool", "value": "true"},
        {"type": "Int", "value": "one"},
        {"type": "UFix64", "value": "abc"},
        {"type": "Address", "value": "0xzz"},
        {"type": "Mystery", "value": 1},
        {"value": 1},
        "not a dict",
    ],
)
def test_malformed_values(obj):
    with pytest.raises(ConversionError):
        decode_value(obj)


def test_decode_json_cadence_invalid_json():
    with pytest.raises(ConversionError):
        decode_json_cadence(b"{not json")


def test_to_argument_value_nested():
    value = to_argument_value([["a"], []], "[[String]]")
    assert value == ArrayArg((ArrayArg((StringArg("a"),)), ArrayArg(())))
    assert to_argument_value(None, "UInt8?") == OptionalArg(None)
    assert to_argument_value("7", "UInt8?") == OptionalArg(IntArg(7, "UInt8"))


@pytest.mark.parametrize(
    "value, declared",
    [
        (None, "String"),
        ("x", "[String]"),
        (1.5, "Int"),
        (True, "UFix64"),
        ("abc", "UFix64"),
        ({}, "SomeStruct"),
    ],
)
def test_to_argument_value_rejects(value, declared):
    with pytest.raises(ConversionError):
        to_argument_value(value, declared)


def test_encode_rejects_out_of_range_kinds():
    with pytest.raises(ConversionError):
        encode_argument(IntArg(-1, "UInt64"))
    with pytest.raises(ConversionError):
        encode_argument(FixArg(Decimal("-1"), "UFix64"))


def test_encode_fix64_signed():
    assert json.loads(encode_argument(FixArg(Decimal("-1.5"), "Fix64"))) == {
        "type": "Fix64",
        "value": "-1.50000000",
    }
