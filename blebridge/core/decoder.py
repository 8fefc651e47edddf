"""Display-type inference and value conversion for raw attribute buffers.

Inference only runs while the current display type is ``UNSET``; once a type
is resolved the caller keeps it and every later buffer is converted with it.
Conversion never raises: a buffer that does not fit the active type renders
as an ``Error: ...`` sentinel string.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from blebridge.core.model import DecodeResult, DisplayType, PresentationFormat

LOGGER = logging.getLogger(__name__)

DEVICE_NAME_ATTRIBUTE = "DeviceName"
NULL_VALUE = "NULL"

_DECIMAL_FORMATS = frozenset(
    {
        PresentationFormat.BOOLEAN,
        PresentationFormat.BIT2,
        PresentationFormat.NIBBLE,
        PresentationFormat.UINT8,
        PresentationFormat.UINT12,
        PresentationFormat.UINT16,
        PresentationFormat.UINT24,
        PresentationFormat.UINT32,
        PresentationFormat.UINT48,
        PresentationFormat.UINT64,
        PresentationFormat.SINT8,
        PresentationFormat.SINT12,
        PresentationFormat.SINT16,
        PresentationFormat.SINT24,
        PresentationFormat.SINT32,
    }
)

HINT_TABLE: dict[PresentationFormat, DisplayType] = {
    fmt: DisplayType.DECIMAL for fmt in _DECIMAL_FORMATS
}
HINT_TABLE[PresentationFormat.UTF8S] = DisplayType.UTF8
HINT_TABLE[PresentationFormat.UTF16S] = DisplayType.UTF16

ERROR_SENTINELS: dict[DisplayType, str] = {
    DisplayType.HEX: "Error: Invalid hex value",
    DisplayType.UNSUPPORTED: "Error: Invalid hex value",
    DisplayType.DECIMAL: "Error: Invalid Int64 Value",
    DisplayType.UTF8: "Error: Invalid UTF8 String",
    DisplayType.UTF16: "Error: Invalid UTF16 String",
    DisplayType.STREAM: "Error: Invalid CUSTOM String",
    DisplayType.BOOL: "Error: Invalid Bool Value",
}

# Bluetooth Core Spec, Vol 3, Part F, 3.4.1.1
ATT_ERROR_STRINGS: dict[int, str] = {
    0x01: "Invalid Handle",
    0x02: "Read Not Permitted",
    0x03: "Write Not Permitted",
    0x04: "Invalid PDU",
    0x05: "Insufficient Authentication",
    0x06: "Request Not Supported",
    0x07: "Invalid Offset",
    0x08: "Insufficient Authorization",
    0x09: "Prepare Queue Full",
    0x0A: "Attribute Not Found",
    0x0B: "Attribute Not Long",
    0x0C: "Insufficient Encryption Key Size",
    0x0D: "Invalid Attribute Value Length",
    0x0E: "Unlikely Error",
    0x0F: "Insufficient Encryption",
    0x10: "Unsupported Group Type",
    0x11: "Insufficient Resources",
}


def protocol_error_string(code: int | None) -> str:
    if code is None:
        return "Protocol Error"
    if code in ATT_ERROR_STRINGS:
        return ATT_ERROR_STRINGS[code]
    if 0x80 <= code <= 0x9F:
        return f"Application Error (0x{code:02X})"
    if code >= 0xE0:
        return f"Common Profile Error (0x{code:02X})"
    return f"Protocol Error (0x{code:02X})"


def display_type_for_hint(hint: PresentationFormat | int) -> DisplayType:
    try:
        fmt = PresentationFormat(hint)
    except ValueError:
        return DisplayType.UNSUPPORTED
    return HINT_TABLE.get(fmt, DisplayType.UNSUPPORTED)


def looks_like_text(raw: bytes) -> bool:
    """Heuristic probe: printable-ASCII UTF-8 that is not a padded one- or two-byte scalar."""
    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError:
        return False

    if len(text) == 1:
        return False
    if len(text) == 2 and text[1] == "\0":
        return False
    return all(" " <= ch <= "~" or ch == "\0" for ch in text)


def infer_display_type(
    raw: bytes,
    hint: PresentationFormat | int | None,
    attribute_name: str,
) -> DisplayType:
    if hint is not None:
        return display_type_for_hint(hint)
    if attribute_name == DEVICE_NAME_ATTRIBUTE:
        return DisplayType.UTF8
    return DisplayType.UTF8 if looks_like_text(raw) else DisplayType.HEX


def _to_hex(raw: bytes) -> str:
    return raw.hex()


def _to_int64(raw: bytes) -> str:
    if len(raw) > 8:
        raise ValueError(f"{len(raw)} bytes do not fit in a 64-bit integer")
    return str(int.from_bytes(raw.ljust(8, b"\0"), "little", signed=True))


def _to_utf8(raw: bytes) -> str:
    return raw.decode("utf-8")


def _to_utf16(raw: bytes) -> str:
    return raw.decode("utf-16-le")


def _to_bool(raw: bytes) -> str:
    return "True" if any(raw) else "False"


def stream_samples(raw: bytes) -> tuple[int, ...]:
    """Split ``raw`` into 2-byte chunks and byte-swap each into an unsigned 16-bit sample.

    A trailing odd byte is discarded.
    """
    usable = len(raw) - (len(raw) % 2)
    return tuple(
        int.from_bytes(raw[i : i + 2][::-1], "big") for i in range(0, usable, 2)
    )


_CONVERTERS: dict[DisplayType, Callable[[bytes], str]] = {
    DisplayType.HEX: _to_hex,
    DisplayType.UNSUPPORTED: _to_hex,
    DisplayType.DECIMAL: _to_int64,
    DisplayType.UTF8: _to_utf8,
    DisplayType.UTF16: _to_utf16,
    DisplayType.BOOL: _to_bool,
}


class SampleDecoder:
    def decode(
        self,
        raw: bytes | bytearray | None,
        hint: PresentationFormat | int | None,
        current_type: DisplayType,
        attribute_name: str,
    ) -> DecodeResult:
        if not raw:
            return DecodeResult(display_type=current_type, value=NULL_VALUE)

        data = bytes(raw)
        display_type = current_type
        if display_type is DisplayType.UNSET:
            display_type = infer_display_type(data, hint, attribute_name)
            LOGGER.debug("%s - display type resolved: %s", attribute_name, display_type.value)

        return self.convert(data, display_type)

    def convert(self, raw: bytes, display_type: DisplayType) -> DecodeResult:
        if display_type is DisplayType.STREAM:
            try:
                samples = stream_samples(raw)
            except (TypeError, ValueError):
                return DecodeResult(display_type, ERROR_SENTINELS[DisplayType.STREAM])
            LOGGER.debug("stream buffer %s -> %d samples", raw.hex("-"), len(samples))
            return DecodeResult(display_type, ",".join(str(s) for s in samples), samples)

        converter = _CONVERTERS.get(display_type)
        if converter is None:
            # UNSET only reaches here when inference was skipped by the caller.
            return DecodeResult(display_type, _to_hex(raw))
        try:
            value = converter(raw)
        except (UnicodeDecodeError, ValueError):
            return DecodeResult(display_type, ERROR_SENTINELS[display_type])

        if display_type in (DisplayType.HEX, DisplayType.UNSUPPORTED):
            LOGGER.debug("hex value %s", value)
        return DecodeResult(display_type, value)
