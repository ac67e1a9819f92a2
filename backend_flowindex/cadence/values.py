"""
JSON-Cadence value conversion.

Decodes JSON-Cadence documents (transaction arguments, event payloads) into
host values and encodes tagged argument values back into JSON-Cadence.

Host value mapping:
    Int*/UInt*/Word*  -> int
    Fix64/UFix64      -> Decimal (never float; fee arithmetic must be exact)
    Address           -> "0x" + 16 lowercase hex digits
    Optional          -> inner value or None
    Array             -> list
    Dictionary        -> dict
    Struct/Resource/Event/Contract/Enum -> dict of fields
    Path              -> "/<domain>/<identifier>"
    Type              -> static type id string
    Capability        -> dict(path/id, address, borrow_type)
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Union

from backend_flowindex.core.exceptions import ConversionError
from backend_flowindex.utils.address_utils import canonical_address

INT_TYPES = frozenset(
    {
        "Int", "Int8", "Int16", "Int32", "Int64", "Int128", "Int256",
        "UInt", "UInt8", "UInt16", "UInt32", "UInt64", "UInt128", "UInt256",
        "Word8", "Word16", "Word32", "Word64", "Word128", "Word256",
    }
)
FIX_TYPES = frozenset({"Fix64", "UFix64"})
COMPOSITE_TYPES = frozenset({"Struct", "Resource", "Event", "Contract", "Enum"})

# UFix64 carries 8 decimal places
FIX_SCALE = Decimal("0.00000001")


@dataclass(frozen=True)
class ConversionOptions:
    """
    Knobs for JSON-Cadence -> host conversion; passed explicitly per call.

    skip_empty_fields: drop composite fields whose value is None or an empty collection.
    include_type_id: add the composite type id under "_type" in decoded composites.
    """

    skip_empty_fields: bool = False
    include_type_id: bool = False


DEFAULT_OPTIONS = ConversionOptions()


def _is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, (list, dict, str)) and len(value) == 0)


def _static_type_id(static_type: Any) -> str:
    if isinstance(static_type, str):
        return static_type
    if isinstance(static_type, dict):
        type_id = static_type.get("typeID")
        if type_id:
            return str(type_id)
        kind = static_type.get("kind")
        if kind in ("Optional",):
            return _static_type_id(static_type.get("type")) + "?"
        if kind in ("VariableSizedArray",):
            return "[" + _static_type_id(static_type.get("type")) + "]"
        if kind:
            return str(kind)
    return ""


def decode_value(obj: Any, options: ConversionOptions = DEFAULT_OPTIONS) -> Any:
    """Convert one JSON-Cadence value object to a host value; raises ConversionError."""
    if not isinstance(obj, dict) or "type" not in obj:
        raise ConversionError(f"not a JSON-Cadence value: {obj!r}")
    kind = obj["type"]
    value = obj.get("value")
    try:
        if kind == "Void":
            return None
        if kind == "Optional":
            return None if value is None else decode_value(value, options)
        if kind == "Bool":
            if not isinstance(value, bool):
                raise ConversionError(f"Bool value must be a boolean, got {value!r}")
            return value
        if kind in ("String", "Character"):
            return str(value)
        if kind == "Address":
            return canonical_address(value)
        if kind in INT_TYPES:
            return int(value)
        if kind in FIX_TYPES:
            return Decimal(value)
        if kind == "Array":
            return [decode_value(item, options) for item in value]
        if kind == "Dictionary":
            out: dict[Any, Any] = {}
            for entry in value:
                key = decode_value(entry["key"], options)
                if isinstance(key, (dict, list)):
                    raise ConversionError(f"unhashable dictionary key {key!r}")
                out[key] = decode_value(entry["value"], options)
            return out
        if kind in COMPOSITE_TYPES:
            fields: dict[str, Any] = {}
            if options.include_type_id:
                fields["_type"] = value["id"]
            for field in value.get("fields") or []:
                decoded = decode_value(field["value"], options)
                if options.skip_empty_fields and _is_empty(decoded):
                    continue
                fields[field["name"]] = decoded
            return fields
        if kind == "Path":
            return f"/{value['domain']}/{value['identifier']}"
        if kind == "Type":
            return _static_type_id(value.get("staticType"))
        if kind == "Capability":
            return {
                "id": value.get("id"),
                "path": value.get("path"),
                "address": canonical_address(value["address"]),
                "borrow_type": _static_type_id(value.get("borrowType")),
            }
    except ConversionError:
        raise
    except (KeyError, TypeError, ValueError, InvalidOperation, AttributeError) as e:
        raise ConversionError(f"malformed {kind} value: {e}") from e
    raise ConversionError(f"unsupported JSON-Cadence type {kind!r}")


def decode_json_cadence(payload: bytes | str, options: ConversionOptions = DEFAULT_OPTIONS) -> Any:
    """Decode a JSON-Cadence document (bytes or text) into a host value."""
    try:
        obj = json.loads(payload)
    except (ValueError, TypeError) as e:
        raise ConversionError(f"invalid JSON-Cadence payload: {e}") from e
    return decode_value(obj, options)


def composite_addresses(obj: Any) -> dict[str, str]:
    """
    Return field name -> canonical address for the Address-typed fields of a
    JSON-Cadence composite (optional addresses included when present).
    """
    if not isinstance(obj, dict) or obj.get("type") not in COMPOSITE_TYPES:
        return {}
    out: dict[str, str] = {}
    for field in (obj.get("value") or {}).get("fields") or []:
        value = field.get("value") or {}
        if value.get("type") == "Optional":
            value = value.get("value") or {}
        if value.get("type") == "Address":
            try:
                out[field["name"]] = canonical_address(value.get("value"))
            except ValueError as e:
                raise ConversionError(f"malformed address in field {field.get('name')!r}") from e
    return out


# --- tagged argument values -------------------------------------------------


@dataclass(frozen=True)
class StringArg:
    value: str

    def to_json_cadence(self) -> dict[str, Any]:
        return {"type": "String", "value": self.value}


@dataclass(frozen=True)
class BoolArg:
    value: bool

    def to_json_cadence(self) -> dict[str, Any]:
        return {"type": "Bool", "value": self.value}


@dataclass(frozen=True)
class AddressArg:
    value: str

    def to_json_cadence(self) -> dict[str, Any]:
        try:
            return {"type": "Address", "value": canonical_address(self.value)}
        except ValueError as e:
            raise ConversionError(str(e)) from e


@dataclass(frozen=True)
class IntArg:
    value: int
    kind: str = "Int"

    def to_json_cadence(self) -> dict[str, Any]:
        if self.kind not in INT_TYPES:
            raise ConversionError(f"{self.kind} is not an integer type")
        if self.kind.startswith(("UInt", "Word")) and self.value < 0:
            raise ConversionError(f"{self.kind} cannot hold negative value {self.value}")
        return {"type": self.kind, "value": str(self.value)}


@dataclass(frozen=True)
class FixArg:
    value: Decimal
    kind: str = "UFix64"

    def to_json_cadence(self) -> dict[str, Any]:
        if self.kind not in FIX_TYPES:
            raise ConversionError(f"{self.kind} is not a fixed-point type")
        if self.kind == "UFix64" and self.value < 0:
            raise ConversionError(f"UFix64 cannot hold negative value {self.value}")
        # JSON-Cadence requires the decimal point and exactly 8 fraction digits
        return {"type": self.kind, "value": str(Decimal(self.value).quantize(FIX_SCALE))}


@dataclass(frozen=True)
class ArrayArg:
    items: tuple["ArgumentValue", ...]

    def to_json_cadence(self) -> dict[str, Any]:
        return {"type": "Array", "value": [item.to_json_cadence() for item in self.items]}


@dataclass(frozen=True)
class OptionalArg:
    inner: "ArgumentValue | None" = None

    def to_json_cadence(self) -> dict[str, Any]:
        return {
            "type": "Optional",
            "value": None if self.inner is None else self.inner.to_json_cadence(),
        }


ArgumentValue = Union[StringArg, BoolArg, AddressArg, IntArg, FixArg, ArrayArg, OptionalArg]
ARGUMENT_VALUE_TYPES = (StringArg, BoolArg, AddressArg, IntArg, FixArg, ArrayArg, OptionalArg)


def to_argument_value(value: Any, declared_type: str) -> ArgumentValue:
    """
    Convert a plain host value into the tagged ArgumentValue for declared_type.

    Already-tagged values pass through unchanged. Supported declared types:
    String, Bool, Address, integer and fixed-point types, [T] and T?.
    """
    if isinstance(value, ARGUMENT_VALUE_TYPES):
        return value
    t = declared_type.strip()
    if t.endswith("?"):
        return OptionalArg(None if value is None else to_argument_value(value, t[:-1]))
    if value is None:
        raise ConversionError(f"None is not a valid {t} value")
    if t.startswith("[") and t.endswith("]"):
        if not isinstance(value, (list, tuple)):
            raise ConversionError(f"{t} expects a list, got {type(value).__name__}")
        return ArrayArg(tuple(to_argument_value(v, t[1:-1]) for v in value))
    if t in ("String", "Character"):
        return StringArg(str(value))
    if t == "Bool":
        if not isinstance(value, bool):
            raise ConversionError(f"Bool expects a boolean, got {value!r}")
        return BoolArg(value)
    if t == "Address":
        return AddressArg(str(value))
    if t in INT_TYPES:
        if isinstance(value, bool) or not isinstance(value, (int, str)):
            raise ConversionError(f"{t} expects an integer, got {value!r}")
        try:
            return IntArg(int(value), t)
        except ValueError as e:
            raise ConversionError(f"{t} expects an integer, got {value!r}") from e
    if t in FIX_TYPES:
        if isinstance(value, bool):
            raise ConversionError(f"{t} expects a number, got {value!r}")
        try:
            return FixArg(Decimal(str(value)), t)
        except InvalidOperation as e:
            raise ConversionError(f"{t} expects a number, got {value!r}") from e
    raise ConversionError(f"unsupported argument type {t!r}")


def encode_argument(value: ArgumentValue) -> bytes:
    """Encode a tagged value as a JSON-Cadence document (UTF-8 bytes)."""
    return json.dumps(value.to_json_cadence(), separators=(",", ":")).encode("utf-8")
