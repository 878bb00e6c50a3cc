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
Module responsible for various utility functions used in other modules.
"""
import dataclasses
import io
import itertools
import json
import os

import numpy as np

import treeseq
from treeseq import UNKNOWN_TIME


# Extra methods for dataclasses
class Dataclass:
    def replace(self, **kwargs):
        """
        Return a new instance of this dataclass, with the specified attributes
        overwritten by new values.

        :return: A new instance of the same type
        """
        return dataclasses.replace(self, **kwargs)

    def asdict(self, **kwargs):
        """
        Return a new dict which maps field names to their corresponding values
        in this dataclass.
        """
        return dataclasses.asdict(self, **kwargs)


def canonical_json(obj):
    """
    Returns string of encoded JSON with keys sorted and whitespace removed to enable
    byte-level comparison of encoded data.

    :param Any obj: Python object to encode
    :return: The encoded string
    :rtype: str
    """
    return json.dumps(obj, sort_keys=True, separators=(",", ":"))


def is_unknown_time(time):
    """
    The unknown mutation time (:const:`UNKNOWN_TIME`) is a specific NAN value,
    so equality comparisons with it always fail. This function compares the
    underlying bits instead, and so returns True only for
    ``treeseq.UNKNOWN_TIME`` and False for ``numpy.nan`` or any other value.
    Either single floats or array-likes can be passed.

    :param time: Value or array to check.
    :type time: Union[float, array-like]
    :return: A single boolean or array of booleans the same shape as ``time``.
    :rtype: Union[bool, numpy.ndarray[bool]]
    """
    return np.asarray(time, dtype=np.float64).view(np.uint64) == np.float64(
        UNKNOWN_TIME
    ).view(np.uint64)


def safe_np_int_cast(int_array, dtype, copy=False):
    """
    Casts the input to an integer array of the given dtype, checking bounds to
    avoid silent wrap-around. If ``copy`` is False and the input is already a
    numpy array of the required dtype it is returned unchanged.
    """
    if not isinstance(int_array, np.ndarray):
        int_array = np.array(int_array)
        copy = False
    if int_array.size == 0:
        return int_array.astype(dtype, copy=copy)
    try:
        return int_array.astype(dtype, casting="safe", copy=copy)
    except TypeError:
        if int_array.dtype == np.dtype("O"):
            # e.g. a list of lists of different lengths
            raise TypeError("Cannot convert to a rectangular array.")
        bounds = np.iinfo(dtype)
        if np.any(int_array < bounds.min) or np.any(int_array > bounds.max):
            raise OverflowError(f"Cannot convert safely to {dtype} type")
        if int_array.dtype.kind == "i" and np.dtype(dtype).kind == "u":
            casting = "unsafe"
        else:
            # Still refuse e.g. floats
            casting = "same_kind"
        return int_array.astype(dtype, casting=casting, copy=copy)


#
# Pack/unpack lists of data into flattened numpy arrays.
#


def _offsets_from_lengths(lengths):
    offset = np.zeros(len(lengths) + 1, dtype=np.uint32)
    np.cumsum(lengths, out=offset[1:])
    return offset


def bytes_to_int8(raw):
    """
    Returns a new int8 numpy array holding the specified bytes.
    """
    if len(raw) == 0:
        return np.zeros(0, dtype=np.int8)
    return np.frombuffer(bytes(raw), dtype=np.int8).copy()


def pack_bytes(data):
    """
    Packs the specified list of bytes into a flattened numpy array of 8 bit
    integers and corresponding offsets. Row ``j`` of the encoded column is
    ``packed[offset[j]: offset[j + 1]]``.

    :param list[bytes] data: The list of bytes values to encode.
    :return: The tuple (packed, offset) of numpy arrays representing the flattened
        input data and offsets.
    :rtype: numpy.ndarray (dtype=np.int8), numpy.ndarray (dtype=np.uint32)
    """
    offset = _offsets_from_lengths([len(value) for value in data])
    packed = bytes_to_int8(b"".join(bytes(value) for value in data))
    return packed, offset


def unpack_bytes(packed, offset):
    """
    Unpacks a list of bytes from the specified numpy arrays of packed byte
    data and corresponding offsets.

    :param numpy.ndarray packed: The flattened array of byte values.
    :param numpy.ndarray offset: The array of offsets into the ``packed`` array.
    :return: The list of bytes values unpacked from the parameter arrays.
    :rtype: list[bytes]
    """
    raw = np.asarray(packed, dtype=np.int8).tobytes()
    return [raw[offset[j] : offset[j + 1]] for j in range(len(offset) - 1)]


def pack_strings(strings, encoding="utf8"):
    """
    Packs the specified list of strings into a flattened numpy array of 8 bit
    integers and corresponding offsets using the specified text encoding.

    :param list[str] strings: The list of strings to encode.
    :param str encoding: The text encoding to use when converting string data
        to bytes.
    :return: The tuple (packed, offset) of numpy arrays representing the flattened
        input data and offsets.
    :rtype: numpy.ndarray (dtype=np.int8), numpy.ndarray (dtype=np.uint32)
    """
    return pack_bytes([s.encode(encoding) for s in strings])


def unpack_strings(packed, offset, encoding="utf8"):
    """
    Unpacks a list of strings from the specified numpy arrays of packed byte
    data and corresponding offsets using the specified text encoding.

    :param numpy.ndarray packed: The flattened array of byte values.
    :param numpy.ndarray offset: The array of offsets into the ``packed`` array.
    :param str encoding: The text encoding used for the packed data.
    :return: The list of strings unpacked from the parameter arrays.
    :rtype: list[str]
    """
    return [b.decode(encoding) for b in unpack_bytes(packed, offset)]


def pack_arrays(list_of_lists, dtype=np.float64):
    """
    Packs the specified list of numeric lists into a flattened numpy array
    of the specified dtype with corresponding offsets.

    :param list[list] list_of_lists: The list of numeric lists to encode.
    :param dtype: The dtype for the packed array, defaults to float64
    :return: The tuple (packed, offset) of numpy arrays representing the flattened
        input data and offsets.
    :rtype: numpy.array (dtype=dtype), numpy.array (dtype=np.uint32)
    """
    offset = _offsets_from_lengths([len(values) for values in list_of_lists])
    data = np.empty(offset[-1], dtype=dtype)
    for j, values in enumerate(list_of_lists):
        data[offset[j] : offset[j + 1]] = values
    return data, offset


def unpack_arrays(packed, offset):
    """
    Unpacks a list of arrays from the specified numpy array of packed
    data and its associated offset array.

    :param numpy.ndarray packed: The flattened array of data.
    :param numpy.ndarray offset: The array of offsets into the ``packed`` array.
    :return: A list of numpy arrays unpacked from the flattened ``packed`` array.
    :rtype: list[numpy.ndarray]
    """
    return [packed[offset[j] : offset[j + 1]] for j in range(len(offset) - 1)]


def check_offsets(offset, data_length, *, name):
    """
    Returns a description of the first problem found with the specified ragged
    column offsets, or None if they are well formed: they must start at zero,
    be non-decreasing and end at the length of the data column.
    """
    offset = np.asarray(offset)
    if len(offset) == 0:
        return f"{name} must contain at least one value"
    if offset[0] != 0:
        return f"{name} must start at zero"
    if np.any(np.diff(offset.astype(np.int64)) < 0):
        return f"{name} must be non-decreasing"
    if offset[-1] != data_length:
        return f"{name} must end at the data length {data_length}, not {offset[-1]}"
    return None


#
# Text rendering
#


def truncate_string_end(string, length):
    """
    If a string is longer than a given length, truncate it to that length
    and add an ellipsis at the end.
    """
    if len(string) <= length:
        return string
    return f"{string[:length - 3]}..."


def render_metadata(md, length=40):
    if md == b"":
        return ""
    return truncate_string_end(str(md), length)


def format_number(number, sig_digits=8, sep=","):
    """
    Format a number with a thousands separator and up to ``sig_digits``
    significant digits.
    """
    return format(number, f",.{sig_digits}g").replace(",", sep)


def naturalsize(value):
    """
    Format a number of bytes like a human readable filesize (e.g. 10 KiB)
    """
    bytes_ = float(value)
    if abs(bytes_) == 1:
        return f"{bytes_:.0f} Byte"
    if abs(bytes_) < 1024:
        return f"{bytes_:.0f} Bytes"
    for j, suffix in enumerate(("KiB", "MiB", "GiB", "TiB", "PiB")):
        unit = 1024 ** (j + 2)
        if abs(bytes_) < unit or suffix == "PiB":
            return f"{1024 * bytes_ / unit:.1f} {suffix}"


def unicode_table(rows, *, title=None, header=None, row_separator=True):
    """
    Convert a table (list of lists) of strings to a unicode table. A row
    containing the string "__skipped__N" is displayed as a single cell saying
    that N rows were skipped.

    :param list[list[str]] rows: List of rows, each of which is a list of strings for
        each cell. Each row must have the same number of cells.
    :param str title: If specified the first output row will be a single cell
        containing this string, left-justified. [optional]
    :param list[str] header: Specifies a row above the main rows which will be in double
        lined borders and left justified. Must be same length as each row. [optional]
    :param boolean row_separator: If True add lines between each row. [Default: True]
    :return: The table as a string
    :rtype: str
    """
    all_rows = rows if header is None else [header] + rows
    skipped = [isinstance(row, str) for row in all_rows]
    cells = [row for row, skip in zip(all_rows, skipped) if not skip]
    widths = [max(len(row[j]) for row in cells) for j in range(len(cells[0]))]
    inner_width = sum(widths) + len(widths) - 1
    out = []
    if title is not None:
        out.append(f"╔{'═' * inner_width}╗\n║{title.ljust(inner_width)}║\n")
        out.append(f"╠{'╤'.join('═' * w for w in widths)}╣\n")
    else:
        out.append(f"╔{'╤'.join('═' * w for w in widths)}╗\n")
    if header is not None:
        out.append(f"║{'│'.join(c.ljust(w) for c, w in zip(header, widths))}║\n")
        out.append(f"╠{'╪'.join('═' * w for w in widths)}╣\n")
    for j, row in enumerate(rows):
        if isinstance(row, str):
            msg = f"{row[11:]} rows skipped (treeseq.set_print_options)"
            out.append(f"║{msg[:inner_width].center(inner_width)}║\n")
            continue
        if j > 0 and row_separator and not isinstance(rows[j - 1], str):
            out.append(f"╟{'┼'.join('─' * w for w in widths)}╢\n")
        line = [row[0].ljust(widths[0])]
        line.extend(cell.rjust(w) for cell, w in zip(row[1:], widths[1:]))
        out.append(f"║{'│'.join(line)}║\n")
    out.append(f"╚{'╧'.join('═' * w for w in widths)}╝\n")
    return "".join(out)


def set_print_options(*, max_lines=40):
    """
    Set the options for printing tables to strings.

    :param integer max_lines: The maximum number of lines to print from a table, beyond
        this number the middle of the table will be skipped.
    """
    treeseq._print_options = {"max_lines": max_lines}


def truncate_rows(num_rows, limit=None):
    """
    Return a list of indexes into a set of rows, but if a ``limit`` is set, truncate the
    number of rows and place a single ``-1`` entry, instead of the intermediate indexes
    """
    if limit is None or num_rows <= limit:
        return range(num_rows)
    return itertools.chain(
        range(limit // 2),
        [-1],
        range(num_rows - (limit - (limit // 2)), num_rows),
    )


#
# File handling
#


def convert_file_like_to_open_file(file_like, mode):
    # Path-like objects are opened (and must be closed) by us; integer fds,
    # objects with a fileno and other file objects belong to the caller.
    _file = None
    local_file = True
    try:
        path = os.fspath(file_like)
        _file = open(path, mode)
    except TypeError:
        pass
    if _file is None:
        try:
            _file = open(file_like, mode, closefd=False, buffering=0)
        except TypeError:
            pass
    if _file is None:
        if mode == "wb" and not hasattr(file_like, "write"):
            raise TypeError("file object must have a write method")
        _file = file_like
        local_file = False
    return _file, local_file


def raise_known_file_format_errors(open_file, existing_exception):
    """
    Sniffs the file for zip or HDF5 header bytes and raises a more helpful
    FileFormatError if one is found. Otherwise the existing exception is raised.
    """
    try:
        open_file.seek(0)
        header = open_file.read(4)
    except (io.UnsupportedOperation, AttributeError):
        raise existing_exception
    if header == b"\x89HDF":
        raise treeseq.FileFormatError(
            "The specified file appears to be in HDF5 format, which is not "
            "supported. Only kastore based tree sequence files can be read."
        ) from existing_exception
    if header[:2] == b"\x50\x4b":
        raise treeseq.FileFormatError(
            "The specified file appears to be in zip format, so may be a compressed "
            "tree sequence. Decompress it before loading."
        ) from existing_exception
    raise existing_exception
