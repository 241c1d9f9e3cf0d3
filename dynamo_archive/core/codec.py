import base64
import binascii
import json
from typing import Any, Callable

from dynamo_archive.core.models import Record
from dynamo_archive.exceptions import CodecError

SCALAR_TAGS = frozenset({"S", "N", "BOOL", "NULL"})
BINARY_TAG = "B"
BINARY_SET_TAG = "BS"
SET_TAGS = frozenset({"SS", "NS", BINARY_SET_TAG})
LIST_TAG = "L"
MAP_TAG = "M"
KNOWN_TAGS = SCALAR_TAGS | SET_TAGS | {BINARY_TAG, LIST_TAG, MAP_TAG}

# Casing used by the Data Pipeline DynamoDB import format
BULK_LOADER_TAGS = {
    "S": "s",
    "N": "n",
    "B": "b",
    "BOOL": "bOOL",
    "NULL": "nULL",
    "L": "l",
    "M": "m",
    "SS": "sS",
    "NS": "nS",
    "BS": "bS",
}
_FROM_BULK_LOADER_TAGS = {value: key for key, value in BULK_LOADER_TAGS.items()}


class RecordCodec:
    """Turns a DynamoDB record into one line of JSON and back.

    Attribute values keep the low-level DynamoDB shape (`{"S": "abc"}`), so a
    line can be handed to BatchWriteItem without further conversion. Binary
    payloads become text: base64 when `binary_as_base64` is set, latin-1
    otherwise. With `bulk_loader_format` every type tag is written with the
    casing the Data Pipeline import format expects.
    """

    def __init__(
        self, binary_as_base64: bool = True, bulk_loader_format: bool = False
    ) -> None:
        self.binary_as_base64 = binary_as_base64
        self.bulk_loader_format = bulk_loader_format

    def encode(self, record: Record) -> str:
        encoded = {
            name: self._transform_value(value, self._encode_tag, self._binary_to_text)
            for name, value in record.items()
        }
        return json.dumps(encoded, separators=(",", ":"), ensure_ascii=False)

    def decode(self, line: str | bytes) -> Record:
        try:
            raw = json.loads(line)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise CodecError(f"Malformed record line: {e}") from e
        if not isinstance(raw, dict):
            raise CodecError(
                f"Expected a JSON object per line, got {type(raw).__name__}"
            )
        return {
            name: self._transform_value(value, self._decode_tag, self._text_to_binary)
            for name, value in raw.items()
        }

    def encode_line(self, record: Record) -> bytes:
        return (self.encode(record) + "\n").encode("utf-8")

    def _encode_tag(self, tag: str) -> str:
        if tag not in KNOWN_TAGS:
            raise CodecError(f"Unknown attribute type tag: {tag}")
        return BULK_LOADER_TAGS[tag] if self.bulk_loader_format else tag

    def _decode_tag(self, tag: str) -> str:
        if self.bulk_loader_format and tag in _FROM_BULK_LOADER_TAGS:
            return _FROM_BULK_LOADER_TAGS[tag]
        if tag in KNOWN_TAGS:
            return tag
        raise CodecError(f"Unknown attribute type tag: {tag}")

    def _binary_to_text(self, value: Any) -> str:
        if isinstance(value, str):
            value = value.encode("utf-8")
        if not isinstance(value, (bytes, bytearray)):
            raise CodecError(f"Binary attribute holds {type(value).__name__}")
        if self.binary_as_base64:
            return base64.b64encode(value).decode("ascii")
        return bytes(value).decode("latin-1")

    def _text_to_binary(self, value: Any) -> bytes:
        if not isinstance(value, str):
            raise CodecError(f"Binary attribute holds {type(value).__name__}")
        if self.binary_as_base64:
            try:
                return base64.b64decode(value, validate=True)
            except binascii.Error as e:
                raise CodecError(f"Invalid base64 binary attribute: {e}") from e
        return value.encode("latin-1")

    def _transform_value(
        self,
        value: Any,
        rename: Callable[[str], str],
        convert_binary: Callable[[Any], Any],
    ) -> dict[str, Any]:
        if not isinstance(value, dict) or len(value) != 1:
            raise CodecError(f"Attribute value must have exactly one type tag: {value!r}")

        tag, payload = next(iter(value.items()))
        new_tag = rename(tag)
        canonical = new_tag if not self.bulk_loader_format else _canonical(new_tag)

        if canonical == BINARY_TAG:
            return {new_tag: convert_binary(payload)}
        if canonical == BINARY_SET_TAG:
            return {new_tag: [convert_binary(member) for member in payload]}
        if canonical == LIST_TAG:
            return {
                new_tag: [
                    self._transform_value(member, rename, convert_binary)
                    for member in payload
                ]
            }
        if canonical == MAP_TAG:
            return {
                new_tag: {
                    name: self._transform_value(member, rename, convert_binary)
                    for name, member in payload.items()
                }
            }
        if canonical in SET_TAGS:
            return {new_tag: list(payload)}
        return {new_tag: payload}


def _canonical(tag: str) -> str:
    return _FROM_BULK_LOADER_TAGS.get(tag, tag)
