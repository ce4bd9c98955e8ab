"""Shared msgspec policy and helpers."""

from __future__ import annotations

from collections.abc import Iterable, Mapping

import msgspec


class StructBaseStrict(
    msgspec.Struct,
    frozen=True,
    kw_only=True,
    omit_defaults=True,
    repr_omit_defaults=True,
    forbid_unknown_fields=True,
):
    """Base struct for strict contracts."""


JSON_ENCODER = msgspec.json.Encoder(decimal_format="number")


def encode_json_lines(rows: Iterable[Mapping[str, object]]) -> bytes:
    """Encode rows as newline-delimited JSON objects.

    Null values are omitted from each object.

    Returns
    -------
    bytes
        One JSON object per row, each terminated by a newline.
    """
    buffer = bytearray()
    for row in rows:
        payload = {key: value for key, value in row.items() if value is not None}
        JSON_ENCODER.encode_into(payload, buffer, -1)
        buffer.extend(b"\n")
    return bytes(buffer)


__all__ = ["JSON_ENCODER", "StructBaseStrict", "encode_json_lines"]
