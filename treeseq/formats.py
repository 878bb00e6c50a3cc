# MIT License
#
# Copyright (c) 2024 Treeseq Developers
#
# Permission is hereby granted, free of charge, to any person obtaining a copy
# of this software and associated documentation files (the "Software"), to deal
# in the Software without restriction, including without limitation the rights
# to use, copy, modify, merge, publish, distribute, sublicense, and/or sell
# copies of the Software, and to permit persons to whom the Software is
# furnished to do so, subject to the following conditions:
#
# The above copyright notice and this permission notice shall be included in all
# copies or substantial portions of the Software.
#
# THE SOFTWARE IS PROVIDED "AS IS", WITHOUT WARRANTY OF ANY KIND, EXPRESS OR
# IMPLIED, INCLUDING BUT NOT LIMITED TO THE WARRANTIES OF MERCHANTABILITY,
# FITNESS FOR A PARTICULAR PURPOSE AND NONINFRINGEMENT. IN NO EVENT SHALL THE
# AUTHORS OR COPYRIGHT HOLDERS BE LIABLE FOR ANY CLAIM, DAMAGES OR OTHER
# LIABILITY, WHETHER IN AN ACTION OF CONTRACT, TORT OR OTHERWISE, ARISING FROM,
# OUT OF OR IN CONNECTION WITH THE SOFTWARE OR THE USE OR OTHER DEALINGS IN THE
# SOFTWARE.
"""
Reading and writing table collections in the kastore based ``.trees``
file format.
"""
import logging
import uuid

import kastore
import numpy as np

import treeseq.exceptions as exceptions
import treeseq.metadata as metadata
import treeseq.tables as tables
import treeseq.util as util

logger = logging.getLogger(__name__)

FORMAT_NAME = "tskit.trees"
FILE_FORMAT_VERSION_MAJOR = 12
FILE_FORMAT_VERSION_MINOR = 7

# Tables are written and read in this order so that every referenced
# table is complete before the tables that refer to it.
TABLE_ORDER = [
    "provenances",
    "populations",
    "individuals",
    "nodes",
    "edges",
    "sites",
    "mutations",
    "migrations",
]

# Keys that may be missing from a file; all others are required.
OPTIONAL_KEYS = {
    "metadata",
    "metadata_schema",
    "time_units",
    "edges/metadata",
    "edges/metadata_offset",
    "migrations/metadata",
    "migrations/metadata_offset",
    "mutations/time",
    "individuals/parents",
    "individuals/parents_offset",
    "indexes/edge_insertion_order",
    "indexes/edge_removal_order",
}


def encode_string(value):
    return util.bytes_to_int8(value.encode())


def decode_string(array):
    return np.asarray(array, dtype=np.int8).tobytes().decode()


def tables_to_store(table_collection):
    """
    Returns the dictionary of named numpy arrays used to store the specified
    table collection, with a freshly generated file UUID.
    """
    data = {
        "format/name": encode_string(FORMAT_NAME),
        "format/version": np.array(
            [FILE_FORMAT_VERSION_MAJOR, FILE_FORMAT_VERSION_MINOR], dtype=np.uint32
        ),
        "sequence_length": np.array(
            [table_collection.sequence_length], dtype=np.float64
        ),
        "uuid": encode_string(str(uuid.uuid4())),
        "time_units": encode_string(table_collection.time_units),
        "metadata": util.bytes_to_int8(table_collection.metadata_bytes),
        "metadata_schema": encode_string(table_collection._metadata_schema_string),
    }
    for name in TABLE_ORDER:
        table = table_collection.table_name_map[name]
        for column, value in table.asdict().items():
            if column == "metadata_schema":
                value = encode_string(value)
            data[f"{name}/{column}"] = value
    for name, value in table_collection.indexes.asdict().items():
        data[f"indexes/{name}"] = value
    return data


def dump_tables(table_collection, file_or_path):
    """
    Writes the specified table collection to a path or open file object.
    """
    data = tables_to_store(table_collection)
    file, local_file = util.convert_file_like_to_open_file(file_or_path, "wb")
    try:
        kastore.dump(data, file)
    finally:
        if local_file:
            file.close()
    logger.debug("Wrote %d keys to %s", len(data), file_or_path)


def _get(store, key):
    if key not in store:
        raise exceptions.FileFormatError(f"Required key '{key}' is missing")
    return store[key]


def _check_header(store):
    try:
        name = decode_string(_get(store, "format/name"))
    except UnicodeDecodeError:
        name = None
    if name != FORMAT_NAME:
        raise exceptions.FileFormatError(
            f"File format name is '{name}', expected '{FORMAT_NAME}'"
        )
    version = _get(store, "format/version")
    if len(version) != 2:
        raise exceptions.MalformedEncodingError(
            "format/version must contain two values", value=len(version)
        )
    if version[0] < FILE_FORMAT_VERSION_MAJOR:
        raise exceptions.VersionTooOldError()
    if version[0] > FILE_FORMAT_VERSION_MAJOR:
        raise exceptions.VersionTooNewError()


def _read_table(store, table):
    columns = {}
    for column in table.column_names:
        key = f"{table.table_name}/{column}"
        if key in store:
            columns[column] = store[key]
        elif key not in OPTIONAL_KEYS:
            raise exceptions.FileFormatError(f"Required key '{key}' is missing")
    key = f"{table.table_name}/metadata_schema"
    if key in store:
        columns["metadata_schema"] = decode_string(store[key])
    if table.table_name == "mutations" and "time" not in columns:
        logger.warning("mutations/time is missing; using UNKNOWN_TIME")
        columns["time"] = np.full(
            len(columns["site"]), tables.UNKNOWN_TIME, dtype=np.float64
        )
    try:
        table.set_columns(**columns)
    except (TypeError, ValueError, OverflowError) as e:
        raise exceptions.MalformedEncodingError(str(e), table=table.table_name) from e


def store_to_tables(store, *, skip_tables=False, strict_references=True):
    """
    Returns a new table collection from the specified mapping of keys to
    arrays, as read from a file.
    """
    _check_header(store)
    sequence_length = _get(store, "sequence_length")
    if len(sequence_length) != 1:
        raise exceptions.MalformedEncodingError(
            "sequence_length must contain a single value", value=len(sequence_length)
        )
    file_uuid = decode_string(_get(store, "uuid"))
    if len(file_uuid) != 36:
        raise exceptions.MalformedEncodingError("Malformed uuid", value=file_uuid)
    ret = tables.TableCollection(
        float(sequence_length[0]), strict_references=strict_references
    )
    ret._file_uuid = file_uuid
    if "time_units" in store:
        ret.time_units = decode_string(store["time_units"])
    if "metadata_schema" in store:
        schema = decode_string(store["metadata_schema"])
        metadata.parse_metadata_schema(schema)
        ret._metadata_schema_string = schema
    if "metadata" in store:
        ret._metadata_bytes = np.asarray(store["metadata"], dtype=np.int8).tobytes()
    if skip_tables:
        return ret
    for name in TABLE_ORDER:
        _read_table(store, ret.table_name_map[name])
    index_keys = ["indexes/edge_insertion_order", "indexes/edge_removal_order"]
    present = [key in store for key in index_keys]
    if any(present) and not all(present):
        raise exceptions.MalformedEncodingError(
            "Both edge indexes must be present", table="indexes"
        )
    if all(present):
        ret.indexes = tables.TableCollectionIndexes(
            edge_insertion_order=store[index_keys[0]],
            edge_removal_order=store[index_keys[1]],
        )
    return ret


def load_tables(file_or_path, *, skip_tables=False):
    """
    Reads a table collection from a path or open file object.
    """
    file, local_file = util.convert_file_like_to_open_file(file_or_path, "rb")
    try:
        try:
            with kastore.load(file, read_all=True) as store:
                data = {key: np.array(value) for key, value in store.items()}
        except kastore.FileFormatError as e:
            util.raise_known_file_format_errors(
                file, exceptions.FileFormatError(f"Not a kastore file: {e}")
            )
    finally:
        if local_file:
            file.close()
    logger.debug("Read %d keys from %s", len(data), file_or_path)
    return store_to_tables(data, skip_tables=skip_tables)
