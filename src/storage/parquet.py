"""Parquet and CSV encoding for Arrow batches written through an ObjectStore."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from enum import StrEnum

import pyarrow as pa
import pyarrow.csv as pacsv
import pyarrow.parquet as pq

from storage.object_store import ObjectMeta, ObjectStore

type TableLike = pa.Table | pa.RecordBatch

MULTIPART_PART_SIZE = 8 * 1024 * 1024


class FileFormat(StrEnum):
    """Output file formats supported by exports."""

    PARQUET = "parquet"
    CSV = "csv"

    @property
    def extension(self) -> str:
        return self.value


@dataclass(frozen=True)
class ParquetWriteOptions:
    """
    Defaults for Parquet writes of exported partitions.

    Notes
    -----
      - compression="zstd" is usually a good trade-off for speed/size.
      - use_dictionary=True helps with string-y partition-adjacent columns.
      - write_statistics=True helps pushdown when the output is queried back.
    """

    compression: str = "zstd"
    use_dictionary: bool = True
    write_statistics: bool = True
    data_page_size: int | None = None
    allow_truncated_timestamps: bool = True


def _as_table(data: TableLike) -> pa.Table:
    if isinstance(data, pa.RecordBatch):
        return pa.Table.from_batches([data])
    return data


def encode_parquet(data: TableLike, *, opts: ParquetWriteOptions | None = None) -> bytes:
    """Encode a table or batch as a single Parquet file.

    Returns
    -------
    bytes
        Parquet file contents.
    """
    options = opts or ParquetWriteOptions()
    sink = pa.BufferOutputStream()
    pq.write_table(
        _as_table(data),
        sink,
        compression=options.compression,
        use_dictionary=options.use_dictionary,
        write_statistics=options.write_statistics,
        data_page_size=options.data_page_size,
        allow_truncated_timestamps=options.allow_truncated_timestamps,
    )
    return sink.getvalue().to_pybytes()


def encode_csv(data: TableLike) -> bytes:
    """Encode a table or batch as CSV with a header row.

    Returns
    -------
    bytes
        UTF-8 CSV contents.
    """
    sink = pa.BufferOutputStream()
    pacsv.write_csv(_as_table(data), sink)
    return sink.getvalue().to_pybytes()


def encode_table(
    data: TableLike,
    file_format: FileFormat,
    *,
    opts: ParquetWriteOptions | None = None,
) -> bytes:
    """Encode ``data`` in the requested file format.

    Returns
    -------
    bytes
        Encoded file contents.
    """
    if file_format is FileFormat.CSV:
        return encode_csv(data)
    return encode_parquet(data, opts=opts)


def _chunks(payload: bytes, size: int) -> Iterator[bytes]:
    view = memoryview(payload)
    for offset in range(0, len(payload), size):
        yield bytes(view[offset : offset + size])


def write_table_to_store(
    store: ObjectStore,
    location: str,
    data: TableLike,
    *,
    file_format: FileFormat = FileFormat.PARQUET,
    opts: ParquetWriteOptions | None = None,
    part_size: int = MULTIPART_PART_SIZE,
) -> ObjectMeta:
    """Write one encoded file to ``location``, replacing any existing object.

    Payloads larger than ``part_size`` are uploaded with ``put_multipart``.

    Returns
    -------
    ObjectMeta
        Metadata of the written object.
    """
    payload = encode_table(data, file_format, opts=opts)
    if len(payload) > part_size:
        return store.put_multipart(location, _chunks(payload, part_size))
    return store.put(location, payload)


__all__ = [
    "MULTIPART_PART_SIZE",
    "FileFormat",
    "ParquetWriteOptions",
    "TableLike",
    "encode_csv",
    "encode_parquet",
    "encode_table",
    "write_table_to_store",
]
