"""Schema inference from Parquet footers and partition-column reconciliation."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence

import pyarrow as pa
import pyarrow.parquet as pq

from core.errors import SchemaError
from storage.object_store import ObjectMeta, ObjectStore, RangeReadFile

_LOGGER = logging.getLogger(__name__)

DEFAULT_SAMPLE_FILES = 16


def _unsupported_type(dtype: pa.DataType) -> pa.DataType | None:
    if isinstance(dtype, pa.ExtensionType) or pa.types.is_union(dtype):
        return dtype
    if pa.types.is_struct(dtype):
        for index in range(dtype.num_fields):
            found = _unsupported_type(dtype.field(index).type)
            if found is not None:
                return found
        return None
    if pa.types.is_map(dtype):
        return _unsupported_type(dtype.key_type) or _unsupported_type(dtype.item_type)
    if (
        pa.types.is_list(dtype)
        or pa.types.is_large_list(dtype)
        or pa.types.is_fixed_size_list(dtype)
    ):
        return _unsupported_type(dtype.value_type)
    return None


def validate_supported_schema(schema: pa.Schema) -> None:
    """Reject fields whose types the engine cannot plan against.

    Raises
    ------
    SchemaError
        Raised for union or extension types, naming the column and type.
    """
    for schema_field in schema:
        found = _unsupported_type(schema_field.type)
        if found is None:
            continue
        msg = f"Unsupported column type for {schema_field.name!r}: {found}."
        raise SchemaError(msg, column=schema_field.name, data_type=str(found))


def read_footer_schema(store: ObjectStore, meta: ObjectMeta) -> pa.Schema:
    """Read the Arrow schema from one Parquet footer using ranged reads.

    Returns
    -------
    pyarrow.Schema
        Schema stored in the file footer.

    Raises
    ------
    SchemaError
        Raised when the footer cannot be decoded.
    """
    with RangeReadFile(store, meta.location, meta.size) as handle:
        try:
            return pq.read_schema(handle)
        except (pa.ArrowInvalid, pa.ArrowNotImplementedError) as exc:
            msg = f"Unreadable Parquet footer in {meta.location!r}: {exc}"
            raise SchemaError(msg) from exc


def infer_file_schema(
    store: ObjectStore,
    files: Sequence[ObjectMeta],
    *,
    sample_files: int = DEFAULT_SAMPLE_FILES,
) -> pa.Schema:
    """Infer a table's physical schema by sampling Parquet footers.

    Parameters
    ----------
    store
        Store holding the files.
    files
        Data files under the table root.
    sample_files
        Maximum number of footers to read, taken in path order.

    Returns
    -------
    pyarrow.Schema
        Unified schema of the sampled files.

    Raises
    ------
    SchemaError
        Raised when sampled schemas conflict or contain unsupported types.
    """
    sampled = sorted(files, key=lambda meta: meta.location)[: max(sample_files, 1)]
    schemas = [read_footer_schema(store, meta) for meta in sampled]
    try:
        schema = pa.unify_schemas(schemas)
    except (pa.ArrowInvalid, pa.ArrowTypeError) as exc:
        msg = f"Incompatible file schemas: {exc}"
        raise SchemaError(msg) from exc
    validate_supported_schema(schema)
    _LOGGER.debug("Inferred schema from %d of %d files.", len(sampled), len(files))
    return schema


def clean_schema(raw: pa.Schema, partitions: Iterable[str]) -> pa.Schema:
    """Drop every field that is also a declared partition column.

    Returns
    -------
    pyarrow.Schema
        Remaining fields in their original order, metadata preserved.
    """
    excluded = set(partitions)
    kept = [schema_field for schema_field in raw if schema_field.name not in excluded]
    return pa.schema(kept, metadata=raw.metadata)


__all__ = [
    "DEFAULT_SAMPLE_FILES",
    "clean_schema",
    "infer_file_schema",
    "read_footer_schema",
    "validate_supported_schema",
]
