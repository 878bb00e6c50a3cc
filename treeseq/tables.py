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
Tree sequence IO via the tables API.
"""
import dataclasses
import datetime
import logging
import math
import numbers
from dataclasses import dataclass
from functools import reduce
from typing import Dict
from typing import Optional
from typing import Union

import numpy as np

import treeseq
import treeseq.exceptions as exceptions
import treeseq.metadata as metadata
import treeseq.util as util
from treeseq import NULL
from treeseq import UNKNOWN_TIME

logger = logging.getLogger(__name__)

dataclass_options = {"frozen": True}


# Needed for cases where `None` can be an appropriate kwarg value,
# we override the meta so that it looks good in the docs.
class NotSetMeta(type):
    def __repr__(cls):
        return "Not set"


class NOTSET(metaclass=NotSetMeta):
    pass


@metadata.lazy_decode()
@dataclass(**dataclass_options)
class IndividualTableRow(util.Dataclass):
    """
    A row in an :class:`IndividualTable`.
    """

    __slots__ = ["flags", "location", "parents", "metadata"]
    flags: int
    location: np.ndarray
    parents: np.ndarray
    metadata: Optional[Union[bytes, dict]]

    # Numpy array columns need a custom eq
    def __eq__(self, other):
        return (
            isinstance(other, IndividualTableRow)
            and self.flags == other.flags
            and np.array_equal(self.location, other.location)
            and np.array_equal(self.parents, other.parents)
            and self.metadata == other.metadata
        )


@metadata.lazy_decode()
@dataclass(**dataclass_options)
class NodeTableRow(util.Dataclass):
    """
    A row in a :class:`NodeTable`.
    """

    __slots__ = ["flags", "time", "population", "individual", "metadata"]
    flags: int
    time: float
    population: int
    individual: int
    metadata: Optional[Union[bytes, dict]]


@metadata.lazy_decode()
@dataclass(**dataclass_options)
class EdgeTableRow(util.Dataclass):
    """
    A row in an :class:`EdgeTable`.
    """

    __slots__ = ["left", "right", "parent", "child", "metadata"]
    left: float
    right: float
    parent: int
    child: int
    metadata: Optional[Union[bytes, dict]]


@metadata.lazy_decode()
@dataclass(**dataclass_options)
class MigrationTableRow(util.Dataclass):
    """
    A row in a :class:`MigrationTable`.
    """

    __slots__ = ["left", "right", "node", "source", "dest", "time", "metadata"]
    left: float
    right: float
    node: int
    source: int
    dest: int
    time: float
    metadata: Optional[Union[bytes, dict]]


@metadata.lazy_decode()
@dataclass(**dataclass_options)
class SiteTableRow(util.Dataclass):
    """
    A row in a :class:`SiteTable`.
    """

    __slots__ = ["position", "ancestral_state", "metadata"]
    position: float
    ancestral_state: str
    metadata: Optional[Union[bytes, dict]]


@metadata.lazy_decode()
@dataclass(**dataclass_options)
class MutationTableRow(util.Dataclass):
    """
    A row in a :class:`MutationTable`.
    """

    __slots__ = ["site", "node", "derived_state", "parent", "metadata", "time"]
    site: int
    node: int
    derived_state: str
    parent: int
    metadata: Optional[Union[bytes, dict]]
    time: float

    # Unknown times are NANs and never compare equal
    def __eq__(self, other):
        return (
            isinstance(other, MutationTableRow)
            and self.site == other.site
            and self.node == other.node
            and self.derived_state == other.derived_state
            and self.parent == other.parent
            and self.metadata == other.metadata
            and (
                self.time == other.time
                or (
                    util.is_unknown_time(self.time) and util.is_unknown_time(other.time)
                )
            )
        )


@metadata.lazy_decode()
@dataclass(**dataclass_options)
class PopulationTableRow(util.Dataclass):
    """
    A row in a :class:`PopulationTable`.
    """

    __slots__ = ["metadata"]
    metadata: Optional[Union[bytes, dict]]


@dataclass(**dataclass_options)
class ProvenanceTableRow(util.Dataclass):
    """
    A row in a :class:`ProvenanceTable`.
    """

    __slots__ = ["timestamp", "record"]
    timestamp: str
    record: str


@dataclass(**dataclass_options)
class TableCollectionIndexes(util.Dataclass):
    """
    A class encapsulating the indexes of a :class:`TableCollection`
    """

    edge_insertion_order: np.ndarray = None
    edge_removal_order: np.ndarray = None

    def asdict(self):
        return {k: v for k, v in dataclasses.asdict(self).items() if v is not None}

    @property
    def nbytes(self) -> int:
        """
        The number of bytes taken by the indexes
        """
        return sum(v.nbytes for v in self.asdict().values())


def take_with_offset(index, data, offset):
    """
    Returns the (data, offset) pair of a ragged column holding only the rows
    listed in ``index``, in that order.
    """
    offset = offset.astype(np.int64)
    starts = offset[:-1][index]
    lengths = (offset[1:] - offset[:-1])[index]
    new_offset = np.zeros(len(index) + 1, dtype=np.int64)
    np.cumsum(lengths, out=new_offset[1:])
    positions = np.repeat(starts - new_offset[:-1], lengths) + np.arange(new_offset[-1])
    return data[positions], new_offset.astype(np.uint32)


def compute_edge_indexes(left, right, parent, child, node_time):
    """
    Returns the (insertion, removal) orders of the specified edge columns.
    Insertion order sorts by left coordinate, then by parent time descending;
    removal order sorts by right coordinate, then by parent time ascending.
    Remaining ties are broken by parent then child ID.
    """
    parent_time = node_time[parent]
    insertion = np.lexsort((child, parent, -parent_time, left))
    removal = np.lexsort((child, parent, parent_time, right))
    return insertion.astype(np.int32), removal.astype(np.int32)


def _first(mask):
    return int(np.flatnonzero(mask)[0])


def _check_ids(table, column, values, num_rows, *, allow_null, offset=None):
    # Rows of ragged columns are found from the element position via offset
    lower = NULL if allow_null else 0
    bad = (values < lower) | (values >= num_rows)
    if np.any(bad):
        j = _first(bad)
        row = j if offset is None else int(np.searchsorted(offset, j, side="right")) - 1
        raise exceptions.OutOfBoundsError(
            f"{column} ID out of bounds (must be < {num_rows})",
            table=table,
            row=row,
            value=int(values[j]),
        )


def _check_finite(table, column, values):
    bad = ~np.isfinite(values)
    if np.any(bad):
        j = _first(bad)
        raise exceptions.NonFiniteValueError(
            f"{column} values must be finite", table=table, row=j, value=values[j]
        )


def _check_intervals(table, left, right, sequence_length):
    for check, message in [
        (
            ~(np.isfinite(left) & np.isfinite(right)),
            "Interval coordinates must be finite",
        ),
        (left < 0, "Left coordinate must be non-negative"),
        (left >= right, "Left coordinate must be strictly less than right"),
        (right > sequence_length, "Right coordinate is greater than sequence length"),
    ]:
        if np.any(check):
            j = _first(check)
            raise exceptions.InvalidIntervalError(
                message, table=table, row=j, value=(float(left[j]), float(right[j]))
            )


def _check_row_interval(table, row_id, left, right, sequence_length):
    message = None
    if not (math.isfinite(left) and math.isfinite(right)):
        message = "Interval coordinates must be finite"
    elif left < 0:
        message = "Left coordinate must be non-negative"
    elif left >= right:
        message = "Left coordinate must be strictly less than right"
    elif sequence_length > 0 and right > sequence_length:
        message = "Right coordinate is greater than sequence length"
    if message is not None:
        raise exceptions.InvalidIntervalError(
            message, table=table, row=row_id, value=(left, right)
        )


def _check_row_id(table, row_id, column, value, num_rows, *, allow_null=False):
    if allow_null and value == NULL:
        return
    if not 0 <= value < num_rows:
        raise exceptions.OutOfBoundsError(
            f"{column} ID out of bounds (must be < {num_rows})",
            table=table,
            row=row_id,
            value=value,
        )


def _check_row_finite(table, row_id, column, value):
    if not math.isfinite(value):
        raise exceptions.NonFiniteValueError(
            f"{column} values must be finite", table=table, row=row_id, value=value
        )


class BaseTable:
    """
    Superclass of high-level tables. Not intended for direct instantiation.

    Each table stores its columns in numpy arrays with spare capacity, which
    grows by ``max_rows_increment`` rows at a time (or doubles, if this is
    zero). Fixed width columns hold one value per row; each ragged column is
    a flat data array plus an offset array with one more entry than there
    are rows, so that row ``j`` is ``data[offset[j]: offset[j + 1]]``.
    """

    # Name used in error messages and in the file format. Set by subclasses.
    table_name = None
    # Fixed width columns, mapping name to dtype. Set by subclasses.
    fixed_columns = {}
    # Ragged columns, mapping name to the dtype of the data. Set by subclasses.
    ragged_columns = {}
    # Ragged int8 columns that are presented to users as str
    text_columns = ()
    # Columns that must be provided to set_columns and append_columns
    required_columns = ()
    # Default values used when an optional fixed column is not provided
    column_defaults = {}
    # The columns, in row_class field order
    row_columns = []
    row_class = None

    def __init__(self, max_rows_increment=0):
        if max_rows_increment < 0:
            raise ValueError("max_rows_increment must be non-negative")
        self._max_rows_increment = int(max_rows_increment)
        self._collection = None
        self._frozen = False
        self._reset_storage()

    @property
    def column_names(self):
        names = []
        for name in self.row_columns:
            names.append(name)
            if name in self.ragged_columns:
                names.append(name + "_offset")
        return names

    def _reset_storage(self):
        self._num_rows = 0
        self._max_rows = 0
        self._data = {}
        self._ragged_length = {}
        for name, dtype in self.fixed_columns.items():
            self._data[name] = np.zeros(0, dtype=dtype)
        for name, dtype in self.ragged_columns.items():
            self._data[name] = np.zeros(0, dtype=dtype)
            self._data[name + "_offset"] = np.zeros(1, dtype=np.uint32)
            self._ragged_length[name] = 0

    def _check_mutable(self):
        if self._frozen:
            raise exceptions.ImmutableTableError(
                f"{type(self).__name__} belongs to a tree sequence and cannot be "
                "modified. Use TreeSequence.dump_tables() to get a mutable copy."
            )

    def _strict_references(self):
        return self._collection is not None and self._collection.strict_references

    def _sequence_length(self):
        if self._collection is None:
            return 0
        return self._collection.sequence_length

    def _reserve(self, num_rows):
        required = self._num_rows + num_rows
        if required <= self._max_rows:
            return
        if self._max_rows_increment == 0:
            new_max = max(required, 2 * self._max_rows, 1024)
        else:
            new_max = max(required, self._max_rows + self._max_rows_increment)
        for name in self.fixed_columns:
            self._data[name] = self._grow(self._data[name], new_max)
        for name in self.ragged_columns:
            key = name + "_offset"
            self._data[key] = self._grow(self._data[key], new_max + 1)
        logger.debug(
            "%s: expanded from %d to %d rows", self.table_name, self._max_rows, new_max
        )
        self._max_rows = new_max

    def _reserve_ragged(self, name, length):
        data = self._data[name]
        required = self._ragged_length[name] + length
        if required > len(data):
            self._data[name] = self._grow(data, max(required, 2 * len(data), 1024))

    @staticmethod
    def _grow(array, size):
        new = np.zeros(size, dtype=array.dtype)
        new[: len(array)] = array
        return new

    def _view(self, name):
        # A view of the live column data; never handed out to users
        n = self._num_rows
        if name in self.fixed_columns:
            return self._data[name][:n]
        if name in self.ragged_columns:
            return self._data[name][: self._ragged_length[name]]
        return self._data[name][: n + 1]

    def _ragged_value(self, name, j):
        offset = self._data[name + "_offset"]
        return self._data[name][offset[j] : offset[j + 1]]

    @property
    def num_rows(self) -> int:
        return self._num_rows

    @property
    def max_rows(self) -> int:
        return self._max_rows

    @property
    def max_rows_increment(self) -> int:
        return self._max_rows_increment

    @property
    def nbytes(self) -> int:
        """
        Returns the total number of bytes required to store the data
        in this table. Note that this may not be equal to
        the actual memory footprint.
        """
        d = self.asdict()
        nbytes = 0
        metadata_schema = d.pop("metadata_schema", None)
        if metadata_schema is not None:
            nbytes += len(metadata_schema.encode())
        nbytes += sum(col.nbytes for col in d.values())
        return nbytes

    def _schema_string(self):
        return None

    def equals(self, other, ignore_metadata=False):
        """
        Returns True if  `self` and `other` are equal. By default, two tables
        are considered equal if their columns and metadata schemas are
        byte-for-byte identical.

        :param other: Another table instance
        :param bool ignore_metadata: If True exclude metadata and metadata schemas
            from the comparison.
        :return: True if other is equal to this table; False otherwise.
        :rtype: bool
        """
        return type(other) is type(self) and self._equal_columns(
            other, skip=("metadata",) if ignore_metadata else ()
        )

    def _equal_columns(self, other, skip=()):
        if self.num_rows != other.num_rows:
            return False
        if "metadata" not in skip and self._schema_string() != other._schema_string():
            return False
        for name in self.column_names:
            if name.replace("_offset", "") in skip:
                continue
            a = self._view(name)
            b = other._view(name)
            # Byte comparison so that NAN values (e.g. UNKNOWN_TIME) compare equal
            if a.dtype != b.dtype or a.tobytes() != b.tobytes():
                return False
        return True

    def assert_equals(self, other, *, ignore_metadata=False):
        """
        Raise an AssertionError for the first found difference between
        this and another table of the same type.

        :param other: Another table instance
        :param bool ignore_metadata: If True exclude metadata and metadata schemas
            from the comparison.
        """
        if type(other) is not type(self):
            raise AssertionError(f"Types differ: self={type(self)} other={type(other)}")

        if self.equals(other, ignore_metadata=ignore_metadata):
            return

        if not ignore_metadata and self.metadata_schema != other.metadata_schema:
            raise AssertionError(
                f"{type(self).__name__} metadata schemas differ: "
                f"self={self.metadata_schema} "
                f"other={other.metadata_schema}"
            )

        for n, (row_self, row_other) in enumerate(zip(self, other)):
            if ignore_metadata:
                row_self = dataclasses.replace(row_self, metadata=None)
                row_other = dataclasses.replace(row_other, metadata=None)
            if row_self != row_other:
                self_dict = dataclasses.asdict(self[n])
                other_dict = dataclasses.asdict(other[n])
                diff_string = []
                for col in self_dict.keys():
                    if isinstance(self_dict[col], np.ndarray):
                        equal = np.array_equal(self_dict[col], other_dict[col])
                    else:
                        equal = self_dict[col] == other_dict[col]
                    if not equal:
                        diff_string.append(
                            f"self.{col}={self_dict[col]} other.{col}={other_dict[col]}"
                        )
                diff_string = "\n".join(diff_string)
                raise AssertionError(
                    f"{type(self).__name__} row {n} differs:\n{diff_string}"
                )

        if self.num_rows != other.num_rows:
            raise AssertionError(
                f"{type(self).__name__} number of rows differ: self={self.num_rows} "
                f"other={other.num_rows}"
            )
        # Only bit-level differences such as -0.0 vs 0.0 remain
        raise AssertionError(
            f"{type(self).__name__} columns differ at the byte level"
        )

    def __eq__(self, other):
        return self.equals(other)

    def __len__(self):
        return self.num_rows

    def __iter__(self):
        for j in range(self.num_rows):
            yield self[j]

    def __getattr__(self, name):
        if not name.startswith("_") and name in self.column_names:
            return self._view(name).copy()
        raise AttributeError(f"{self.__class__.__name__} object has no attribute {name}")

    def __setattr__(self, name, value):
        if not name.startswith("_") and name in self.column_names:
            d = self.asdict()
            d[name] = value
            self.set_columns(**d)
        else:
            object.__setattr__(self, name, value)

    def _make_row(self, *args):
        return self.row_class(*args)

    def _row_values(self, j):
        values = []
        for name in self.row_columns:
            if name in self.fixed_columns:
                values.append(self._data[name][j].item())
            elif name in self.text_columns:
                values.append(self._ragged_value(name, j).tobytes().decode())
            elif self.ragged_columns[name] == np.int8:
                values.append(self._ragged_value(name, j).tobytes())
            else:
                values.append(self._ragged_value(name, j).copy())
        return values

    def __getitem__(self, index):
        """
        If passed an integer, return the specified row of this table, decoding metadata
        if it is present. Supports negative indexing, e.g. ``table[-5]``.
        If passed a slice, iterable or array return a new table containing the specified
        rows. Similar to numpy fancy indexing, if the array or iterables contains
        booleans then the index acts as a mask, returning those rows for which the mask
        is True. Note that as the result is a new table, the row ids will change as
        row ids are row indexes.

        :param index: the index of a desired row, a slice of the desired rows, an
            iterable or array of the desired row numbers, or a boolean array to use as
            a mask.
        """
        if isinstance(index, numbers.Integral):
            if index < 0:
                index += len(self)
            if index < 0 or index >= len(self):
                raise IndexError("Index out of bounds")
            return self._make_row(*self._row_values(index))
        elif isinstance(index, numbers.Number):
            raise TypeError("Index must be integer, slice or iterable")
        elif isinstance(index, slice):
            index = np.arange(*index.indices(len(self)), dtype=np.int64)
        else:
            index = np.asarray(index)
            if index.dtype == np.bool_:
                if len(index) != len(self):
                    raise IndexError("Boolean index must be same length as table")
                index = np.flatnonzero(index)
            index = util.safe_np_int_cast(index, np.int64)
            if np.any(index < -len(self)) or np.any(index >= len(self)):
                raise IndexError("Index out of bounds")
            index = np.where(index < 0, index + len(self), index)
        return self._take(index)

    def _take(self, index):
        ret = self.__class__()
        columns = {}
        for name in self.fixed_columns:
            columns[name] = self._view(name)[index]
        for name in self.ragged_columns:
            columns[name], columns[name + "_offset"] = take_with_offset(
                index, self._view(name), self._view(name + "_offset")
            )
        ret._append_columns(columns)
        ret._set_schema_string(self._schema_string())
        return ret

    def _set_schema_string(self, schema):
        pass

    def __setitem__(self, index, new_row):
        """
        Replaces a row of this table at the specified index with information from a
        row-like object. Metadata will be validated and encoded according to the
        table's metadata schema.

        :param index: the index of the row to change
        :param row-like new_row: An object that has attributes corresponding to the
            properties of the new row. Both the objects returned from ``table[i]`` and
            e.g. ``ts.individual(i)`` work for this purpose, along with any other
            object with the correct attributes.
        """
        if isinstance(index, numbers.Integral):
            if index < 0:
                index += len(self)
            if index < 0 or index >= len(self):
                raise IndexError("Index out of bounds")
        else:
            raise TypeError("Index must be integer")
        row_data = {column: getattr(new_row, column) for column in self.row_columns}
        if "metadata" in row_data:
            row_data["metadata"] = self.metadata_schema.validate_and_encode_row(
                row_data["metadata"]
            )
        self._update_row(int(index), row_data)

    def append(self, row):
        """
        Adds a new row to this table and returns the ID of the new row. Metadata, if
        specified, will be validated and encoded according to the table's
        metadata schema.

        :param row-like row: An object that has attributes corresponding to the
            properties of the new row. Both the objects returned from ``table[i]`` and
            e.g. ``ts.individual(i)`` work for this purpose, along with any other
            object with the correct attributes.
        :return: The index of the newly added row.
        :rtype: int
        """
        return self.add_row(
            **{column: getattr(row, column) for column in self.row_columns}
        )

    def _coerce_scalar(self, name, value):
        dtype = np.dtype(self.fixed_columns[name])
        if dtype.kind == "f":
            return float(value)
        if not isinstance(value, numbers.Integral):
            raise TypeError(f"{name} must be an integer, not {type(value)}")
        info = np.iinfo(dtype)
        if not info.min <= value <= info.max:
            raise OverflowError(f"{name} value {value} does not fit in {dtype}")
        return int(value)

    def _coerce_ragged(self, name, value):
        dtype = self.ragged_columns[name]
        if value is None:
            return np.zeros(0, dtype=dtype)
        if name in self.text_columns:
            if isinstance(value, str):
                value = value.encode()
            return util.bytes_to_int8(value)
        if dtype == np.int8:
            if not isinstance(value, (bytes, bytearray, memoryview)):
                raise TypeError(f"{name} must be bytes, not {type(value)}")
            return util.bytes_to_int8(value)
        array = np.array(value, ndmin=1)
        if array.ndim != 1:
            raise ValueError(f"{name} must be one-dimensional")
        if np.dtype(dtype).kind == "f":
            return array.astype(dtype)
        return util.safe_np_int_cast(array, dtype)

    def _check_row(self, row_id, row):
        # Overridden by tables that have per-row requirements
        pass

    def _add_row(self, **values):
        self._check_mutable()
        row = {
            name: self._coerce_scalar(name, values[name])
            for name in self.fixed_columns
        }
        for name in self.ragged_columns:
            row[name] = self._coerce_ragged(name, values.get(name))
        row_id = self._num_rows
        self._check_row(row_id, row)
        self._reserve(1)
        for name in self.fixed_columns:
            self._data[name][row_id] = row[name]
        for name in self.ragged_columns:
            value = row[name]
            start = self._ragged_length[name]
            self._reserve_ragged(name, len(value))
            self._data[name][start : start + len(value)] = value
            self._ragged_length[name] = start + len(value)
            self._data[name + "_offset"][row_id + 1] = start + len(value)
        self._num_rows += 1
        return row_id

    def _update_row(self, row_id, values):
        self._check_mutable()
        row = {
            name: self._coerce_scalar(name, values[name])
            for name in self.fixed_columns
        }
        for name in self.ragged_columns:
            row[name] = self._coerce_ragged(name, values.get(name))
        self._check_row(row_id, row)
        for name in self.fixed_columns:
            self._data[name][row_id] = row[name]
        for name in self.ragged_columns:
            offset = self._view(name + "_offset").astype(np.int64)
            data = self._view(name)
            new_data = np.concatenate(
                [data[: offset[row_id]], row[name], data[offset[row_id + 1] :]]
            )
            delta = len(row[name]) - (offset[row_id + 1] - offset[row_id])
            offset[row_id + 1 :] += delta
            self._data[name] = new_data
            self._data[name + "_offset"][: self._num_rows + 1] = offset
            self._ragged_length[name] = len(new_data)

    def _as_column(self, name, value):
        if name in self.fixed_columns:
            dtype = self.fixed_columns[name]
        else:
            dtype = self.ragged_columns[name]
        array = np.asarray(value)
        if dtype == np.int8 and array.dtype == np.uint8:
            array = array.view(np.int8)
        if np.dtype(dtype).kind == "f":
            array = array.astype(dtype)
        else:
            array = util.safe_np_int_cast(array, dtype)
        if array.ndim != 1:
            raise ValueError(f"{name} must be a one-dimensional array")
        return array

    def _prepare_columns(self, columns):
        """
        Checks the specified column arrays and returns the tuple
        (num_rows, fixed, ragged) ready to be appended.
        """
        num_rows = None
        fixed = {}
        for name in self.fixed_columns:
            value = columns.get(name)
            if value is None:
                if name in self.required_columns:
                    raise TypeError(f"{name} is required")
                continue
            array = self._as_column(name, value)
            if num_rows is None:
                num_rows = len(array)
            elif len(array) != num_rows:
                raise ValueError("Columns must be the same length")
            fixed[name] = array
        ragged = {}
        for name in self.ragged_columns:
            data = columns.get(name)
            offset = columns.get(name + "_offset")
            if data is None and offset is None:
                if name in self.required_columns:
                    raise TypeError(f"{name} and {name}_offset are required")
                continue
            if data is None or offset is None:
                raise TypeError(f"{name} and {name}_offset must be specified together")
            data = self._as_column(name, data)
            offset = util.safe_np_int_cast(np.asarray(offset), np.uint64)
            if num_rows is None:
                num_rows = max(len(offset) - 1, 0)
            if len(offset) != num_rows + 1:
                raise exceptions.MalformedEncodingError(
                    f"{name}_offset must have one more entry than the number of rows",
                    table=self.table_name,
                    value=len(offset),
                )
            problem = util.check_offsets(offset, len(data), name=f"{name}_offset")
            if problem is not None:
                raise exceptions.MalformedEncodingError(problem, table=self.table_name)
            ragged[name] = data, offset
        return 0 if num_rows is None else num_rows, fixed, ragged

    def _append_prepared(self, num_rows, fixed, ragged):
        start = self._num_rows
        self._reserve(num_rows)
        end = start + num_rows
        for name in self.fixed_columns:
            if name in fixed:
                self._data[name][start:end] = fixed[name]
            else:
                self._data[name][start:end] = self.column_defaults.get(name, 0)
        for name in self.ragged_columns:
            base = self._ragged_length[name]
            offset_column = self._data[name + "_offset"]
            if name in ragged:
                data, offset = ragged[name]
                self._reserve_ragged(name, len(data))
                self._data[name][base : base + len(data)] = data
                offset_column[start + 1 : end + 1] = offset[1:] + base
                self._ragged_length[name] = base + len(data)
            else:
                offset_column[start + 1 : end + 1] = base
        self._num_rows = end

    def _append_columns(self, columns):
        self._check_mutable()
        self._append_prepared(*self._prepare_columns(columns))

    def _set_columns(self, columns):
        self._check_mutable()
        columns = dict(columns)
        schema = columns.pop("metadata_schema", None)
        prepared = self._prepare_columns(columns)
        self._reset_storage()
        self._append_prepared(*prepared)
        if schema is not None:
            self._set_schema_string(schema)

    def replace_with(self, other):
        # Overwrite the contents of this table with a copy of the other table
        self.set_columns(**other.asdict())

    def clear(self):
        """
        Deletes all rows in this table.
        """
        self._check_mutable()
        self._reset_storage()

    def truncate(self, num_rows):
        """
        Truncates this table so that the only the first ``num_rows`` are retained.

        :param int num_rows: The number of rows to retain in this table.
        """
        self._check_mutable()
        if num_rows < 0 or num_rows > self.num_rows:
            raise ValueError("Bad truncate length")
        self._num_rows = int(num_rows)
        for name in self.ragged_columns:
            self._ragged_length[name] = int(self._data[name + "_offset"][num_rows])

    # Pickle support
    def __getstate__(self):
        return self.asdict()

    # Unpickle support
    def __setstate__(self, state):
        self.__init__()
        self.set_columns(**state)

    def copy(self):
        """
        Returns a deep copy of this table
        """
        copy = self.__class__(max_rows_increment=self.max_rows_increment)
        copy.set_columns(**self.asdict())
        return copy

    def asdict(self):
        """
        Returns a dictionary mapping the names of the columns in this table
        to the corresponding numpy arrays.
        """
        ret = {col: self._view(col).copy() for col in self.column_names}
        schema = self._schema_string()
        if schema is not None:
            ret["metadata_schema"] = schema
        return ret

    def set_columns(self, **kwargs):
        """
        Sets the values for each column in this :class:`Table` using values
        provided in numpy arrays. Overwrites existing data in all the table columns.
        """
        raise NotImplementedError()

    def __str__(self):
        headers, rows = self._text_header_and_rows(
            limit=treeseq._print_options["max_lines"]
        )
        if len(rows) == 0:
            rows = [[""] * len(headers)]
        return util.unicode_table(rows, header=headers, row_separator=False)

    def _text_header_and_rows(self, limit=None):
        headers = ["id"] + self.row_columns
        rows = []
        for j in util.truncate_rows(self.num_rows, limit):
            if j == -1:
                rows.append(f"__skipped__{self.num_rows - limit}")
                continue
            cells = [str(j)]
            row = self[j]
            for name in self.row_columns:
                value = getattr(row, name)
                if name == "metadata":
                    cells.append(util.render_metadata(value))
                elif isinstance(value, np.ndarray):
                    cells.append(", ".join(map(str, value)))
                elif isinstance(value, float):
                    cells.append(f"{value:.8g}")
                else:
                    cells.append(str(value))
            rows.append(cells)
        return headers, rows


class MetadataTable(BaseTable):
    """
    Base class for tables that have a metadata column. The column stores
    exactly the bytes it is given; the schema is kept alongside as a string
    and is only used when encoding or decoding Python objects.
    """

    def __init__(self, max_rows_increment=0):
        self._metadata_schema_string = ""
        super().__init__(max_rows_increment=max_rows_increment)

    def _schema_string(self):
        return self._metadata_schema_string

    def _set_schema_string(self, schema):
        if schema is not None:
            # Check the string parses
            metadata.parse_metadata_schema(schema)
            self._metadata_schema_string = schema

    def _make_row(self, *args):
        return self.row_class(*args, metadata_decoder=self.metadata_schema.decode_row)

    @property
    def metadata_schema(self) -> metadata.MetadataSchema:
        """
        The :class:`treeseq.MetadataSchema` for this table.
        """
        return metadata.parse_metadata_schema(self._metadata_schema_string)

    @metadata_schema.setter
    def metadata_schema(self, schema: metadata.MetadataSchema) -> None:
        self._check_mutable()
        if not isinstance(schema, metadata.MetadataSchema):
            raise TypeError(
                "Only instances of treeseq.MetadataSchema can be assigned to "
                f"metadata_schema, not {type(schema)}"
            )
        self._metadata_schema_string = repr(schema)

    def _encode_metadata(self, metadata):
        # Raw bytes are stored as given, whatever the schema
        if isinstance(metadata, (bytes, bytearray, memoryview)):
            return bytes(metadata)
        if metadata is None:
            metadata = self.metadata_schema.empty_value
        return self.metadata_schema.validate_and_encode_row(metadata)

    def metadata_bytes(self, row_id):
        """
        Returns the raw metadata bytes stored for the specified row, exactly
        as they were supplied.

        :param int row_id: The row of interest.
        :rtype: bytes
        """
        if not -self.num_rows <= row_id < self.num_rows:
            raise IndexError("Index out of bounds")
        return self._ragged_value("metadata", row_id % self.num_rows).tobytes()

    def set_metadata(self, row_id, metadata):
        """
        Replaces the metadata of the specified row. Bytes values are stored
        unchanged whatever the schema; other values are validated and encoded
        with the table's schema.

        :param int row_id: The row to change.
        :param object metadata: The new metadata value.
        """
        if not -self.num_rows <= row_id < self.num_rows:
            raise IndexError("Index out of bounds")
        row_id %= self.num_rows
        values = dict(zip(self.row_columns, self._row_values(row_id)))
        values["metadata"] = self._encode_metadata(metadata)
        self._update_row(row_id, values)

    def packset_metadata(self, metadatas):
        """
        Packs the specified list of metadata values and updates the ``metadata``
        and ``metadata_offset`` columns. The length of the metadatas array
        must be equal to the number of rows in the table.

        :param list metadatas: A list of metadata bytes values.
        """
        packed, offset = util.pack_bytes(metadatas)
        data = self.asdict()
        data["metadata"] = packed
        data["metadata_offset"] = offset
        self.set_columns(**data)

    def metadata_vector(self, key, *, dtype=None, default_value=NOTSET):
        """
        Returns a numpy array of metadata values obtained by extracting ``key``
        from each metadata entry, and using ``default_value`` if the key is
        not present. ``key`` may be a list, in which case nested values are returned.
        For instance, ``key = ["a", "x"]`` will return an array of
        ``row.metadata["a"]["x"]`` values, iterated over rows in this table.

        :param str key: The name, or a list of names, of metadata entries.
        :param str dtype: The dtype of the result (can usually be omitted).
        :param object default_value: The value to be inserted if the metadata key
            is not present. The default behaviour is to raise ``KeyError`` on
            missing entries.
        """
        if default_value is NOTSET:

            def getter(d, k):
                return d[k]

        else:

            def getter(d, k):
                return d.get(k, default_value) if isinstance(d, dict) else default_value

        keys = key if isinstance(key, list) else [key]
        return np.array(
            [reduce(getter, keys, row.metadata) for row in self], dtype=dtype
        )

    def drop_metadata(self, *, keep_schema=False):
        """
        Drops all metadata in this table. By default, the schema is also cleared,
        except if ``keep_schema`` is True.

        :param bool keep_schema: True if the current schema should be kept intact.
        """
        data = self.asdict()
        data["metadata"] = np.zeros(0, dtype=np.int8)
        data["metadata_offset"][:] = 0
        self.set_columns(**data)
        if not keep_schema:
            self.metadata_schema = metadata.MetadataSchema.null()


class IndividualTable(MetadataTable):
    """
    A table defining the individuals in a tree sequence. Individuals group
    nodes together and may record a location and a list of parent
    individuals, both stored as ragged columns.

    :ivar flags: The array of flags values.
    :vartype flags: numpy.ndarray, dtype=np.uint32
    :ivar location: The flattened array of floating point location values.
    :vartype location: numpy.ndarray, dtype=np.float64
    :ivar location_offset: The array of offsets into the location column.
    :vartype location_offset: numpy.ndarray, dtype=np.uint32
    :ivar parents: The flattened array of parent individual ids.
    :vartype parents: numpy.ndarray, dtype=np.int32
    :ivar parents_offset: The array of offsets into the parents column.
    :vartype parents_offset: numpy.ndarray, dtype=np.uint32
    :ivar metadata: The flattened array of binary metadata values.
    :vartype metadata: numpy.ndarray, dtype=np.int8
    :ivar metadata_offset: The array of offsets into the metadata column.
    :vartype metadata_offset: numpy.ndarray, dtype=np.uint32
    """

    table_name = "individuals"
    fixed_columns = {"flags": np.uint32}
    ragged_columns = {"location": np.float64, "parents": np.int32, "metadata": np.int8}
    required_columns = ("flags",)
    row_columns = ["flags", "location", "parents", "metadata"]
    row_class = IndividualTableRow

    def _check_row(self, row_id, row):
        if not self._strict_references():
            return
        for parent in row["parents"]:
            if parent == row_id:
                raise exceptions.OutOfBoundsError(
                    "Individuals cannot be their own parents",
                    table=self.table_name,
                    row=row_id,
                    value=int(parent),
                )
            _check_row_id(
                self.table_name,
                row_id,
                "parents",
                int(parent),
                self.num_rows,
                allow_null=True,
            )

    def add_row(self, flags=0, location=None, parents=None, metadata=None):
        """
        Adds a new row to this :class:`IndividualTable` and returns the ID of the
        corresponding individual. Metadata, if specified, will be validated and encoded
        according to the table's
        :attr:`metadata_schema<treeseq.IndividualTable.metadata_schema>`.

        :param int flags: The bitwise flags for the new individual.
        :param array-like location: A list of numeric values or one-dimensional numpy
            array describing the location of this individual. If not specified
            or None, a zero-dimensional location is stored.
        :param array-like parents: A list or array of ids of parent individuals. If not
            specified an empty array is stored.
        :param object metadata: Any object that is valid metadata for the table's schema.
            Defaults to the default metadata value for the table's schema. This is
            typically ``{}``. For no schema, ``None``.
        :return: The ID of the newly added individual.
        :rtype: int
        """
        return self._add_row(
            flags=flags,
            location=location,
            parents=parents,
            metadata=self._encode_metadata(metadata),
        )

    def set_columns(
        self,
        flags=None,
        location=None,
        location_offset=None,
        parents=None,
        parents_offset=None,
        metadata=None,
        metadata_offset=None,
        metadata_schema=None,
    ):
        """
        Sets the values for each column in this :class:`IndividualTable` using the
        values in the specified arrays. Overwrites existing data in all the table
        columns. The ``flags`` array is required and gives the number of rows; each
        ragged column must be supplied together with its offsets.

        :param metadata_schema: The encoded metadata schema. If None (default)
            do not overwrite the exising schema.
        :type metadata_schema: str
        """
        self._set_columns(
            dict(
                flags=flags,
                location=location,
                location_offset=location_offset,
                parents=parents,
                parents_offset=parents_offset,
                metadata=metadata,
                metadata_offset=metadata_offset,
                metadata_schema=metadata_schema,
            )
        )

    def append_columns(
        self,
        flags=None,
        location=None,
        location_offset=None,
        parents=None,
        parents_offset=None,
        metadata=None,
        metadata_offset=None,
    ):
        """
        Appends the specified arrays to the end of the columns in this
        :class:`IndividualTable`. This allows many new rows to be added at once.
        """
        self._append_columns(
            dict(
                flags=flags,
                location=location,
                location_offset=location_offset,
                parents=parents,
                parents_offset=parents_offset,
                metadata=metadata,
                metadata_offset=metadata_offset,
            )
        )

    def packset_location(self, locations):
        """
        Packs the specified list of location values and updates the ``location``
        and ``location_offset`` columns. The length of the locations array
        must be equal to the number of rows in the table.

        :param list locations: A list of locations interpreted as numpy float64
            arrays.
        """
        packed, offset = util.pack_arrays(locations)
        d = self.asdict()
        d["location"] = packed
        d["location_offset"] = offset
        self.set_columns(**d)

    def packset_parents(self, parents):
        """
        Packs the specified list of parent values and updates the ``parent``
        and ``parent_offset`` columns. The length of the parents array
        must be equal to the number of rows in the table.

        :param list parents: A list of list of parent ids, interpreted as numpy int32
            arrays.
        """
        packed, offset = util.pack_arrays(parents, np.int32)
        d = self.asdict()
        d["parents"] = packed
        d["parents_offset"] = offset
        self.set_columns(**d)


class NodeTable(MetadataTable):
    """
    A table defining the nodes in a tree sequence. Node times must be finite;
    the ``population`` and ``individual`` columns hold ids into the
    population and individual tables, or :data:`treeseq.NULL`.

    :ivar flags: The array of flags values.
    :vartype flags: numpy.ndarray, dtype=np.uint32
    :ivar time: The array of time values.
    :vartype time: numpy.ndarray, dtype=np.float64
    :ivar population: The array of population IDs.
    :vartype population: numpy.ndarray, dtype=np.int32
    :ivar individual: The array of individual IDs that each node belongs to.
    :vartype individual: numpy.ndarray, dtype=np.int32
    :ivar metadata: The flattened array of binary metadata values.
    :vartype metadata: numpy.ndarray, dtype=np.int8
    :ivar metadata_offset: The array of offsets into the metadata column.
    :vartype metadata_offset: numpy.ndarray, dtype=np.uint32
    """

    table_name = "nodes"
    fixed_columns = {
        "flags": np.uint32,
        "time": np.float64,
        "population": np.int32,
        "individual": np.int32,
    }
    ragged_columns = {"metadata": np.int8}
    required_columns = ("flags", "time")
    column_defaults = {"population": NULL, "individual": NULL}
    row_columns = ["flags", "time", "population", "individual", "metadata"]
    row_class = NodeTableRow

    def _check_row(self, row_id, row):
        _check_row_finite(self.table_name, row_id, "time", row["time"])
        if row["time"] < 0:
            raise exceptions.TimeOrderError(
                "Node times must be non-negative",
                table=self.table_name,
                row=row_id,
                value=row["time"],
            )
        if not self._strict_references():
            return
        tables = self._collection
        _check_row_id(
            self.table_name,
            row_id,
            "population",
            row["population"],
            tables.populations.num_rows,
            allow_null=True,
        )
        _check_row_id(
            self.table_name,
            row_id,
            "individual",
            row["individual"],
            tables.individuals.num_rows,
            allow_null=True,
        )

    def add_row(self, flags=0, time=0, population=-1, individual=-1, metadata=None):
        """
        Adds a new row to this :class:`NodeTable` and returns the ID of the
        corresponding node. Metadata, if specified, will be validated and encoded
        according to the table's
        :attr:`metadata_schema<treeseq.NodeTable.metadata_schema>`.

        :param int flags: The bitwise flags for the new node.
        :param float time: The birth time for the new node.
        :param int population: The ID of the population in which the new node was born.
            Defaults to :data:`treeseq.NULL`.
        :param int individual: The ID of the individual in which the new node was born.
            Defaults to :data:`treeseq.NULL`.
        :param object metadata: Any object that is valid metadata for the table's schema.
        :return: The ID of the newly added node.
        :rtype: int
        """
        return self._add_row(
            flags=flags,
            time=time,
            population=population,
            individual=individual,
            metadata=self._encode_metadata(metadata),
        )

    def set_columns(
        self,
        flags=None,
        time=None,
        population=None,
        individual=None,
        metadata=None,
        metadata_offset=None,
        metadata_schema=None,
    ):
        """
        Sets the values for each column in this :class:`NodeTable` using the values in
        the specified arrays. Overwrites existing data in all the table columns.

        The ``flags`` and ``time`` arrays are required and must be of the same length.
        If ``population`` or ``individual`` is not specified, :data:`treeseq.NULL`
        is stored for each node. The ``metadata`` and ``metadata_offset`` parameters
        must be supplied together.

        :param flags: The bitwise flags for each node. Required.
        :type flags: numpy.ndarray, dtype=np.uint32
        :param time: The time values for each node. Required.
        :type time: numpy.ndarray, dtype=np.float64
        :param population: The population values for each node.
        :type population: numpy.ndarray, dtype=np.int32
        :param individual: The individual values for each node.
        :type individual: numpy.ndarray, dtype=np.int32
        :param metadata: The flattened metadata array.
        :type metadata: numpy.ndarray, dtype=np.int8
        :param metadata_offset: The offsets into the ``metadata`` array.
        :type metadata_offset: numpy.ndarray, dtype=np.uint32.
        :param metadata_schema: The encoded metadata schema. If None (default)
            do not overwrite the exising schema.
        :type metadata_schema: str
        """
        self._set_columns(
            dict(
                flags=flags,
                time=time,
                population=population,
                individual=individual,
                metadata=metadata,
                metadata_offset=metadata_offset,
                metadata_schema=metadata_schema,
            )
        )

    def append_columns(
        self,
        flags=None,
        time=None,
        population=None,
        individual=None,
        metadata=None,
        metadata_offset=None,
    ):
        """
        Appends the specified arrays to the end of the columns in this
        :class:`NodeTable`. This allows many new rows to be added at once.
        The arguments are as for :meth:`.set_columns`.
        """
        self._append_columns(
            dict(
                flags=flags,
                time=time,
                population=population,
                individual=individual,
                metadata=metadata,
                metadata_offset=metadata_offset,
            )
        )


class EdgeTable(MetadataTable):
    """
    A table defining the edges in a tree sequence. Each edge records that
    ``parent`` is the parent of ``child`` over the half-open interval
    ``[left, right)``.

    :ivar left: The array of left coordinates.
    :vartype left: numpy.ndarray, dtype=np.float64
    :ivar right: The array of right coordinates.
    :vartype right: numpy.ndarray, dtype=np.float64
    :ivar parent: The array of parent node IDs.
    :vartype parent: numpy.ndarray, dtype=np.int32
    :ivar child: The array of child node IDs.
    :vartype child: numpy.ndarray, dtype=np.int32
    :ivar metadata: The flattened array of binary metadata values.
    :vartype metadata: numpy.ndarray, dtype=np.int8
    :ivar metadata_offset: The array of offsets into the metadata column.
    :vartype metadata_offset: numpy.ndarray, dtype=np.uint32
    """

    table_name = "edges"
    fixed_columns = {
        "left": np.float64,
        "right": np.float64,
        "parent": np.int32,
        "child": np.int32,
    }
    ragged_columns = {"metadata": np.int8}
    required_columns = ("left", "right", "parent", "child")
    row_columns = ["left", "right", "parent", "child", "metadata"]
    row_class = EdgeTableRow

    def _check_row(self, row_id, row):
        _check_row_interval(
            self.table_name, row_id, row["left"], row["right"], self._sequence_length()
        )
        if not self._strict_references():
            return
        nodes = self._collection.nodes
        for column in ["parent", "child"]:
            _check_row_id(self.table_name, row_id, column, row[column], nodes.num_rows)
        time = nodes._view("time")
        if time[row["parent"]] <= time[row["child"]]:
            raise exceptions.TimeOrderError(
                "Parent time must be greater than child time",
                table=self.table_name,
                row=row_id,
                value=(float(time[row["parent"]]), float(time[row["child"]])),
            )

    def add_row(self, left, right, parent, child, metadata=None):
        """
        Adds a new row to this :class:`EdgeTable` and returns the ID of the
        corresponding edge. Metadata, if specified, will be validated and encoded
        according to the table's
        :attr:`metadata_schema<treeseq.EdgeTable.metadata_schema>`.

        :param float left: The left coordinate (inclusive).
        :param float right: The right coordinate (exclusive).
        :param int parent: The ID of parent node.
        :param int child: The ID of child node.
        :param object metadata: Any object that is valid metadata for the table's schema.
        :return: The ID of the newly added edge.
        :rtype: int
        """
        return self._add_row(
            left=left,
            right=right,
            parent=parent,
            child=child,
            metadata=self._encode_metadata(metadata),
        )

    def set_columns(
        self,
        left=None,
        right=None,
        parent=None,
        child=None,
        metadata=None,
        metadata_offset=None,
        metadata_schema=None,
    ):
        """
        Sets the values for each column in this :class:`EdgeTable` using the values
        in the specified arrays. Overwrites existing data in all the table columns.

        The ``left``, ``right``, ``parent`` and ``child`` parameters are mandatory,
        and must be numpy arrays of the same length (which is equal to the number of
        edges the table will contain).

        :param left: The left coordinates (inclusive).
        :type left: numpy.ndarray, dtype=np.float64
        :param right: The right coordinates (exclusive).
        :type right: numpy.ndarray, dtype=np.float64
        :param parent: The parent node IDs.
        :type parent: numpy.ndarray, dtype=np.int32
        :param child: The child node IDs.
        :type child: numpy.ndarray, dtype=np.int32
        :param metadata: The flattened metadata array.
        :type metadata: numpy.ndarray, dtype=np.int8
        :param metadata_offset: The offsets into the ``metadata`` array.
        :type metadata_offset: numpy.ndarray, dtype=np.uint32.
        :param metadata_schema: The encoded metadata schema.
        :type metadata_schema: str
        """
        self._set_columns(
            dict(
                left=left,
                right=right,
                parent=parent,
                child=child,
                metadata=metadata,
                metadata_offset=metadata_offset,
                metadata_schema=metadata_schema,
            )
        )

    def append_columns(
        self, left, right, parent, child, metadata=None, metadata_offset=None
    ):
        """
        Appends the specified arrays to the end of the columns of this
        :class:`EdgeTable`. This allows many new rows to be added at once.
        """
        self._append_columns(
            dict(
                left=left,
                right=right,
                parent=parent,
                child=child,
                metadata=metadata,
                metadata_offset=metadata_offset,
            )
        )


class MigrationTable(MetadataTable):
    """
    A table defining the migrations in a tree sequence. Each row records
    that the lineage of ``node`` moved from population ``source`` to
    population ``dest`` at ``time`` over the interval ``[left, right)``.

    :ivar left: The array of left coordinates.
    :vartype left: numpy.ndarray, dtype=np.float64
    :ivar right: The array of right coordinates.
    :vartype right: numpy.ndarray, dtype=np.float64
    :ivar node: The array of node IDs.
    :vartype node: numpy.ndarray, dtype=np.int32
    :ivar source: The array of source population IDs.
    :vartype source: numpy.ndarray, dtype=np.int32
    :ivar dest: The array of destination population IDs.
    :vartype dest: numpy.ndarray, dtype=np.int32
    :ivar time: The array of time values.
    :vartype time: numpy.ndarray, dtype=np.float64
    :ivar metadata: The flattened array of binary metadata values.
    :vartype metadata: numpy.ndarray, dtype=np.int8
    :ivar metadata_offset: The array of offsets into the metadata column.
    :vartype metadata_offset: numpy.ndarray, dtype=np.uint32
    """

    table_name = "migrations"
    fixed_columns = {
        "left": np.float64,
        "right": np.float64,
        "node": np.int32,
        "source": np.int32,
        "dest": np.int32,
        "time": np.float64,
    }
    ragged_columns = {"metadata": np.int8}
    required_columns = ("left", "right", "node", "source", "dest", "time")
    row_columns = ["left", "right", "node", "source", "dest", "time", "metadata"]
    row_class = MigrationTableRow

    def _check_row(self, row_id, row):
        _check_row_interval(
            self.table_name, row_id, row["left"], row["right"], self._sequence_length()
        )
        _check_row_finite(self.table_name, row_id, "time", row["time"])
        if not self._strict_references():
            return
        tables = self._collection
        _check_row_id(
            self.table_name, row_id, "node", row["node"], tables.nodes.num_rows
        )
        for column in ["source", "dest"]:
            _check_row_id(
                self.table_name,
                row_id,
                column,
                row[column],
                tables.populations.num_rows,
            )

    def add_row(self, left, right, node, source, dest, time, metadata=None):
        """
        Adds a new row to this :class:`MigrationTable` and returns its corresponding
        ID. Metadata, if specified, will be validated and encoded according to the
        table's :attr:`metadata_schema<treeseq.MigrationTable.metadata_schema>`.

        :param float left: The left coordinate (inclusive).
        :param float right: The right coordinate (exclusive).
        :param int node: The node ID.
        :param int source: The ID of the source population.
        :param int dest: The ID of the destination population.
        :param float time: The time of the migration event.
        :param object metadata: Any object that is valid metadata for the table's schema.
        :return: The ID of the newly added migration.
        :rtype: int
        """
        return self._add_row(
            left=left,
            right=right,
            node=node,
            source=source,
            dest=dest,
            time=time,
            metadata=self._encode_metadata(metadata),
        )

    def set_columns(
        self,
        left=None,
        right=None,
        node=None,
        source=None,
        dest=None,
        time=None,
        metadata=None,
        metadata_offset=None,
        metadata_schema=None,
    ):
        """
        Sets the values for each column in this :class:`MigrationTable` using the
        values in the specified arrays. Overwrites existing data in all the table
        columns. All fixed width columns are required and must be of the same length.
        """
        self._set_columns(
            dict(
                left=left,
                right=right,
                node=node,
                source=source,
                dest=dest,
                time=time,
                metadata=metadata,
                metadata_offset=metadata_offset,
                metadata_schema=metadata_schema,
            )
        )

    def append_columns(
        self,
        left,
        right,
        node,
        source,
        dest,
        time,
        metadata=None,
        metadata_offset=None,
    ):
        """
        Appends the specified arrays to the end of the columns of this
        :class:`MigrationTable`. This allows many new rows to be added at once.
        """
        self._append_columns(
            dict(
                left=left,
                right=right,
                node=node,
                source=source,
                dest=dest,
                time=time,
                metadata=metadata,
                metadata_offset=metadata_offset,
            )
        )


class SiteTable(MetadataTable):
    """
    A table defining the sites in a tree sequence. Site positions must be
    finite, unique and within the sequence.

    :ivar position: The array of site position coordinates.
    :vartype position: numpy.ndarray, dtype=np.float64
    :ivar ancestral_state: The flattened array of ancestral state strings.
    :vartype ancestral_state: numpy.ndarray, dtype=np.int8
    :ivar ancestral_state_offset: The offsets of rows in the ancestral_state
        array.
    :vartype ancestral_state_offset: numpy.ndarray, dtype=np.uint32
    :ivar metadata: The flattened array of binary metadata values.
    :vartype metadata: numpy.ndarray, dtype=np.int8
    :ivar metadata_offset: The array of offsets into the metadata column.
    :vartype metadata_offset: numpy.ndarray, dtype=np.uint32
    """

    table_name = "sites"
    fixed_columns = {"position": np.float64}
    ragged_columns = {"ancestral_state": np.int8, "metadata": np.int8}
    text_columns = ("ancestral_state",)
    required_columns = ("position", "ancestral_state")
    row_columns = ["position", "ancestral_state", "metadata"]
    row_class = SiteTableRow

    def _check_row(self, row_id, row):
        position = row["position"]
        _check_row_finite(self.table_name, row_id, "position", position)
        sequence_length = self._sequence_length()
        if position < 0 or (sequence_length > 0 and position >= sequence_length):
            raise exceptions.OutOfBoundsError(
                "Site position must be within the sequence",
                table=self.table_name,
                row=row_id,
                value=position,
            )

    def add_row(self, position, ancestral_state, metadata=None):
        """
        Adds a new row to this :class:`SiteTable` and returns the ID of the
        corresponding site. Metadata, if specified, will be validated and encoded
        according to the table's
        :attr:`metadata_schema<treeseq.SiteTable.metadata_schema>`.

        :param float position: The position of this site in genome coordinates.
        :param str ancestral_state: The state of this site at the root of the tree.
        :param object metadata: Any object that is valid metadata for the table's schema.
        :return: The ID of the newly added site.
        :rtype: int
        """
        return self._add_row(
            position=position,
            ancestral_state=ancestral_state,
            metadata=self._encode_metadata(metadata),
        )

    def set_columns(
        self,
        position=None,
        ancestral_state=None,
        ancestral_state_offset=None,
        metadata=None,
        metadata_offset=None,
        metadata_schema=None,
    ):
        """
        Sets the values for each column in this :class:`SiteTable` using the values
        in the specified arrays. Overwrites existing data in all the table columns.

        The ``position``, ``ancestral_state`` and ``ancestral_state_offset``
        parameters are mandatory.

        :param position: The position of each site in genome coordinates.
        :type position: numpy.ndarray, dtype=np.float64
        :param ancestral_state: The flattened ancestral_state array. Required.
        :type ancestral_state: numpy.ndarray, dtype=np.int8
        :param ancestral_state_offset: The offsets into the ``ancestral_state`` array.
        :type ancestral_state_offset: numpy.ndarray, dtype=np.uint32.
        :param metadata: The flattened metadata array.
        :type metadata: numpy.ndarray, dtype=np.int8
        :param metadata_offset: The offsets into the ``metadata`` array.
        :type metadata_offset: numpy.ndarray, dtype=np.uint32.
        :param metadata_schema: The encoded metadata schema.
        :type metadata_schema: str
        """
        self._set_columns(
            dict(
                position=position,
                ancestral_state=ancestral_state,
                ancestral_state_offset=ancestral_state_offset,
                metadata=metadata,
                metadata_offset=metadata_offset,
                metadata_schema=metadata_schema,
            )
        )

    def append_columns(
        self,
        position,
        ancestral_state,
        ancestral_state_offset,
        metadata=None,
        metadata_offset=None,
    ):
        """
        Appends the specified arrays to the end of the columns of this
        :class:`SiteTable`. This allows many new rows to be added at once.
        """
        self._append_columns(
            dict(
                position=position,
                ancestral_state=ancestral_state,
                ancestral_state_offset=ancestral_state_offset,
                metadata=metadata,
                metadata_offset=metadata_offset,
            )
        )

    def packset_ancestral_state(self, ancestral_states):
        """
        Packs the specified list of ancestral_state values and updates the
        ``ancestral_state`` and ``ancestral_state_offset`` columns. The length
        of the ancestral_states array must be equal to the number of rows in
        the table.

        :param list(str) ancestral_states: A list of string ancestral state values.
        """
        packed, offset = util.pack_strings(ancestral_states)
        d = self.asdict()
        d["ancestral_state"] = packed
        d["ancestral_state_offset"] = offset
        self.set_columns(**d)


class MutationTable(MetadataTable):
    """
    A table defining the mutations in a tree sequence. A mutation's ``time``
    may be :data:`treeseq.UNKNOWN_TIME`; ``parent`` is the id of the
    mutation above it at the same site, or :data:`treeseq.NULL`.

    :ivar site: The array of site IDs.
    :vartype site: numpy.ndarray, dtype=np.int32
    :ivar node: The array of node IDs.
    :vartype node: numpy.ndarray, dtype=np.int32
    :ivar time: The array of time values.
    :vartype time: numpy.ndarray, dtype=np.float64
    :ivar derived_state: The flattened array of derived state strings.
    :vartype derived_state: numpy.ndarray, dtype=np.int8
    :ivar derived_state_offset: The offsets of rows in the derived_state array.
    :vartype derived_state_offset: numpy.ndarray, dtype=np.uint32
    :ivar parent: The array of parent mutation IDs.
    :vartype parent: numpy.ndarray, dtype=np.int32
    :ivar metadata: The flattened array of binary metadata values.
    :vartype metadata: numpy.ndarray, dtype=np.int8
    :ivar metadata_offset: The array of offsets into the metadata column.
    :vartype metadata_offset: numpy.ndarray, dtype=np.uint32
    """

    table_name = "mutations"
    fixed_columns = {
        "site": np.int32,
        "node": np.int32,
        "parent": np.int32,
        "time": np.float64,
    }
    ragged_columns = {"derived_state": np.int8, "metadata": np.int8}
    text_columns = ("derived_state",)
    required_columns = ("site", "node", "derived_state")
    column_defaults = {"parent": NULL, "time": UNKNOWN_TIME}
    row_columns = ["site", "node", "derived_state", "parent", "metadata", "time"]
    row_class = MutationTableRow

    def _check_row(self, row_id, row):
        time = row["time"]
        known_time = not util.is_unknown_time(time)
        if known_time:
            _check_row_finite(self.table_name, row_id, "time", time)
        if not self._strict_references():
            return
        tables = self._collection
        _check_row_id(
            self.table_name, row_id, "site", row["site"], tables.sites.num_rows
        )
        _check_row_id(
            self.table_name, row_id, "node", row["node"], tables.nodes.num_rows
        )
        parent = row["parent"]
        _check_row_id(self.table_name, row_id, "parent", parent, row_id, allow_null=True)
        if known_time and time < tables.nodes._view("time")[row["node"]]:
            raise exceptions.TimeOrderError(
                "A mutation's time must be >= the node time, or be marked as "
                "'unknown'",
                table=self.table_name,
                row=row_id,
                value=time,
            )
        if parent != NULL:
            if self._view("site")[parent] != row["site"]:
                raise exceptions.TimeOrderError(
                    "A mutation's parent must be at the same site",
                    table=self.table_name,
                    row=row_id,
                    value=parent,
                )
            parent_time = self._view("time")[parent]
            if known_time and not util.is_unknown_time(parent_time):
                if time > parent_time:
                    raise exceptions.TimeOrderError(
                        "A mutation's time must be <= the parent mutation time",
                        table=self.table_name,
                        row=row_id,
                        value=time,
                    )

    def add_row(self, site, node, derived_state, parent=-1, metadata=None, time=None):
        """
        Adds a new row to this :class:`MutationTable` and returns the ID of the
        corresponding mutation. Metadata, if specified, will be validated and encoded
        according to the table's
        :attr:`metadata_schema<treeseq.MutationTable.metadata_schema>`.

        :param int site: The ID of the site that this mutation occurs at.
        :param int node: The ID of the first node inheriting this mutation.
        :param str derived_state: The state of the site at this mutation's node.
        :param int parent: The ID of the parent mutation. If not specified,
            defaults to :attr:`NULL`.
        :param object metadata: Any object that is valid metadata for the table's schema.
        :param float time: The occurrence time for the new mutation. If not specified,
            defaults to ``UNKNOWN_TIME``, indicating the time is unknown.
        :return: The ID of the newly added mutation.
        :rtype: int
        """
        return self._add_row(
            site=site,
            node=node,
            derived_state=derived_state,
            parent=parent,
            metadata=self._encode_metadata(metadata),
            time=UNKNOWN_TIME if time is None else time,
        )

    def set_columns(
        self,
        site=None,
        node=None,
        time=None,
        derived_state=None,
        derived_state_offset=None,
        parent=None,
        metadata=None,
        metadata_offset=None,
        metadata_schema=None,
    ):
        """
        Sets the values for each column in this :class:`MutationTable` using the
        values in the specified arrays. Overwrites existing data in all the columns
        in this table.

        The ``site``, ``node``, ``derived_state`` and ``derived_state_offset``
        parameters are mandatory. If ``time`` is not specified the unknown time
        value is stored, and if ``parent`` is not specified :data:`treeseq.NULL`
        is stored for each mutation.

        :param site: The ID of the site each mutation occurs at.
        :type site: numpy.ndarray, dtype=np.int32
        :param node: The ID of the node each mutation is associated with.
        :type node: numpy.ndarray, dtype=np.int32
        :param time: The time values for each mutation.
        :type time: numpy.ndarray, dtype=np.float64
        :param derived_state: The flattened derived_state array. Required.
        :type derived_state: numpy.ndarray, dtype=np.int8
        :param derived_state_offset: The offsets into the ``derived_state`` array.
        :type derived_state_offset: numpy.ndarray, dtype=np.uint32.
        :param parent: The ID of the parent mutation for each mutation.
        :type parent: numpy.ndarray, dtype=np.int32
        :param metadata: The flattened metadata array.
        :type metadata: numpy.ndarray, dtype=np.int8
        :param metadata_offset: The offsets into the ``metadata`` array.
        :type metadata_offset: numpy.ndarray, dtype=np.uint32.
        :param metadata_schema: The encoded metadata schema.
        :type metadata_schema: str
        """
        self._set_columns(
            dict(
                site=site,
                node=node,
                parent=parent,
                time=time,
                derived_state=derived_state,
                derived_state_offset=derived_state_offset,
                metadata=metadata,
                metadata_offset=metadata_offset,
                metadata_schema=metadata_schema,
            )
        )

    def append_columns(
        self,
        site,
        node,
        derived_state,
        derived_state_offset,
        parent=None,
        time=None,
        metadata=None,
        metadata_offset=None,
    ):
        """
        Appends the specified arrays to the end of the columns of this
        :class:`MutationTable`. This allows many new rows to be added at once.
        """
        self._append_columns(
            dict(
                site=site,
                node=node,
                parent=parent,
                time=time,
                derived_state=derived_state,
                derived_state_offset=derived_state_offset,
                metadata=metadata,
                metadata_offset=metadata_offset,
            )
        )

    def packset_derived_state(self, derived_states):
        """
        Packs the specified list of derived_state values and updates the
        ``derived_state`` and ``derived_state_offset`` columns. The length
        of the derived_states array must be equal to the number of rows in
        the table.

        :param list(str) derived_states: A list of string derived state values.
        """
        packed, offset = util.pack_strings(derived_states)
        d = self.asdict()
        d["derived_state"] = packed
        d["derived_state_offset"] = offset
        self.set_columns(**d)


class PopulationTable(MetadataTable):
    """
    A table defining the populations referred to in a tree sequence.
    Populations carry nothing but metadata.

    :ivar metadata: The flattened array of binary metadata values.
    :vartype metadata: numpy.ndarray, dtype=np.int8
    :ivar metadata_offset: The array of offsets into the metadata column.
    :vartype metadata_offset: numpy.ndarray, dtype=np.uint32
    """

    table_name = "populations"
    ragged_columns = {"metadata": np.int8}
    required_columns = ("metadata",)
    row_columns = ["metadata"]
    row_class = PopulationTableRow

    def add_row(self, metadata=None):
        """
        Adds a new row to this :class:`PopulationTable` and returns the ID of the
        corresponding population. Metadata, if specified, will be validated and encoded
        according to the table's
        :attr:`metadata_schema<treeseq.PopulationTable.metadata_schema>`.

        :param object metadata: Any object that is valid metadata for the table's schema.
        :return: The ID of the newly added population.
        :rtype: int
        """
        return self._add_row(metadata=self._encode_metadata(metadata))

    def set_columns(self, metadata=None, metadata_offset=None, metadata_schema=None):
        """
        Sets the values for each column in this :class:`PopulationTable` using the
        values in the specified arrays. The number of rows is given by the length
        of ``metadata_offset`` minus one.
        """
        self._set_columns(
            dict(
                metadata=metadata,
                metadata_offset=metadata_offset,
                metadata_schema=metadata_schema,
            )
        )

    def append_columns(self, metadata=None, metadata_offset=None):
        """
        Appends the specified arrays to the end of the columns of this
        :class:`PopulationTable`.
        """
        self._append_columns(dict(metadata=metadata, metadata_offset=metadata_offset))


class ProvenanceTable(BaseTable):
    """
    A table recording the provenance (i.e., history) of this table, so that the
    origin of the underlying data and sequence of subsequent operations can be
    traced. Each row contains a "record" string (recommended format: JSON) and
    a timestamp.

    :ivar record: The flattened array containing the record strings.
    :vartype record: numpy.ndarray, dtype=np.int8
    :ivar record_offset: The array of offsets into the record column.
    :vartype record_offset: numpy.ndarray, dtype=np.uint32
    :ivar timestamp: The flattened array containing the timestamp strings.
    :vartype timestamp: numpy.ndarray, dtype=np.int8
    :ivar timestamp_offset: The array of offsets into the timestamp column.
    :vartype timestamp_offset: numpy.ndarray, dtype=np.uint32
    """

    table_name = "provenances"
    ragged_columns = {"timestamp": np.int8, "record": np.int8}
    text_columns = ("timestamp", "record")
    required_columns = ("timestamp", "record")
    row_columns = ["timestamp", "record"]
    row_class = ProvenanceTableRow

    def equals(self, other, ignore_timestamps=False):
        """
        Returns True if `self` and `other` are equal. By default, two provenance
        tables are considered equal if their columns are byte-for-byte identical.

        :param other: Another provenance table instance
        :param bool ignore_timestamps: If True exclude the timestamp column
            from the comparison.
        :return: True if other is equal to this provenance table; False otherwise.
        :rtype: bool
        """
        return type(other) is type(self) and self._equal_columns(
            other, skip=("timestamp",) if ignore_timestamps else ()
        )

    def assert_equals(self, other, *, ignore_timestamps=False):
        """
        Raise an AssertionError for the first found difference between
        this and another provenance table.

        :param other: Another provenance table instance
        :param bool ignore_timestamps: If True exclude the timestamp column
            from the comparison.
        """
        if type(other) is not type(self):
            raise AssertionError(f"Types differ: self={type(self)} other={type(other)}")
        if self.equals(other, ignore_timestamps=ignore_timestamps):
            return
        if self.num_rows != other.num_rows:
            raise AssertionError(
                f"{type(self).__name__} number of rows differ: self={self.num_rows} "
                f"other={other.num_rows}"
            )
        for n, (row_self, row_other) in enumerate(zip(self, other)):
            if row_self.record != row_other.record:
                raise AssertionError(
                    f"{type(self).__name__} row {n} differs:\n"
                    f"self.record={row_self.record} other.record={row_other.record}"
                )
            if not ignore_timestamps and row_self.timestamp != row_other.timestamp:
                raise AssertionError(
                    f"{type(self).__name__} row {n} differs:\n"
                    f"self.timestamp={row_self.timestamp} "
                    f"other.timestamp={row_other.timestamp}"
                )

    def add_row(self, record, timestamp=None):
        """
        Adds a new row to this ProvenanceTable consisting of the specified record and
        timestamp. If timestamp is not specified, it is automatically generated from
        the current time.

        :param str record: A provenance record, describing the parameters and
            environment used to generate the current set of tables.
        :param str timestamp: A string timestamp. This should be in ISO8601 form.
        """
        if timestamp is None:
            timestamp = datetime.datetime.now().isoformat()
        return self._add_row(timestamp=timestamp, record=record)

    def set_columns(
        self, timestamp=None, timestamp_offset=None, record=None, record_offset=None
    ):
        """
        Sets the values for each column in this :class:`ProvenanceTable` using the
        values in the specified arrays. Overwrites existing data in all the table
        columns. Both ragged columns and their offsets are required.
        """
        self._set_columns(
            dict(
                timestamp=timestamp,
                timestamp_offset=timestamp_offset,
                record=record,
                record_offset=record_offset,
            )
        )

    def append_columns(
        self, timestamp=None, timestamp_offset=None, record=None, record_offset=None
    ):
        """
        Appends the specified arrays to the end of the columns of this
        :class:`ProvenanceTable`.
        """
        self._append_columns(
            dict(
                timestamp=timestamp,
                timestamp_offset=timestamp_offset,
                record=record,
                record_offset=record_offset,
            )
        )

    def packset_record(self, records):
        """
        Packs the specified list of record values and updates the
        ``record`` and ``record_offset`` columns. The length
        of the records array must be equal to the number of rows in
        the table.

        :param list(str) records: A list of string record values.
        """
        packed, offset = util.pack_strings(records)
        d = self.asdict()
        d["record"] = packed
        d["record_offset"] = offset
        self.set_columns(**d)

    def packset_timestamp(self, timestamps):
        """
        Packs the specified list of timestamp values and updates the
        ``timestamp`` and ``timestamp_offset`` columns. The length
        of the timestamps array must be equal to the number of rows in
        the table.

        :param list(str) timestamps: A list of string timestamp values.
        """
        packed, offset = util.pack_strings(timestamps)
        d = self.asdict()
        d["timestamp"] = packed
        d["timestamp_offset"] = offset
        self.set_columns(**d)


class TableCollection(metadata.MetadataProvider):
    """
    A collection of mutable tables defining a tree sequence. Arbitrary
    data can be stored in a TableCollection, but the tables must satisfy the
    requirements checked by :meth:`.check_integrity` before they can be
    interpreted as a tree sequence.

    By default ids referenced by a new row are checked as the row is added,
    so rows must be added in dependency order (populations and individuals,
    then nodes, then edges, sites, mutations and migrations). When
    ``strict_references`` is False these checks are deferred to
    :meth:`.tree_sequence`, allowing rows to refer forwards to rows that
    are added later. Bulk column updates are always checked at that point.

    To obtain an immutable :class:`TreeSequence` instance corresponding to the
    current state of a ``TableCollection``, please use the :meth:`.tree_sequence`
    method.

    :param float sequence_length: The sequence length, or zero to have it
        inferred from the edges when the tree sequence is built.
    :param bool strict_references: Whether to check referenced ids when each
        row is added.
    """

    def __init__(self, sequence_length=0, *, strict_references=True):
        self._frozen = False
        self._strict_references = bool(strict_references)
        self._sequence_length = 0.0
        self.sequence_length = sequence_length
        self._metadata_bytes = b""
        self._metadata_schema_string = ""
        self._time_units = "unknown"
        self._file_uuid = None
        self._indexes = TableCollectionIndexes()
        self._individuals = IndividualTable()
        self._nodes = NodeTable()
        self._edges = EdgeTable()
        self._migrations = MigrationTable()
        self._sites = SiteTable()
        self._mutations = MutationTable()
        self._populations = PopulationTable()
        self._provenances = ProvenanceTable()
        for table in self.table_name_map.values():
            table._collection = self

    def _check_mutable(self):
        if self._frozen:
            raise exceptions.ImmutableTableError(
                "The tables of a tree sequence cannot be modified. "
                "Use TreeSequence.dump_tables() to get a mutable copy."
            )

    def _freeze(self):
        self._frozen = True
        for table in self.table_name_map.values():
            table._frozen = True

    @property
    def individuals(self) -> IndividualTable:
        """
        The individual table in this collection.
        """
        return self._individuals

    @individuals.setter
    def individuals(self, value):
        self._individuals.replace_with(value)

    @property
    def nodes(self) -> NodeTable:
        """
        The node table in this collection.
        """
        return self._nodes

    @nodes.setter
    def nodes(self, value):
        self._nodes.replace_with(value)

    @property
    def edges(self) -> EdgeTable:
        """
        The edge table in this collection.
        """
        return self._edges

    @edges.setter
    def edges(self, value):
        self._edges.replace_with(value)

    @property
    def migrations(self) -> MigrationTable:
        """
        The migration table in this collection.
        """
        return self._migrations

    @migrations.setter
    def migrations(self, value):
        self._migrations.replace_with(value)

    @property
    def sites(self) -> SiteTable:
        """
        The site table in this collection.
        """
        return self._sites

    @sites.setter
    def sites(self, value):
        self._sites.replace_with(value)

    @property
    def mutations(self) -> MutationTable:
        """
        The mutation table in this collection.
        """
        return self._mutations

    @mutations.setter
    def mutations(self, value):
        self._mutations.replace_with(value)

    @property
    def populations(self) -> PopulationTable:
        """
        The population table in this collection.
        """
        return self._populations

    @populations.setter
    def populations(self, value):
        self._populations.replace_with(value)

    @property
    def provenances(self) -> ProvenanceTable:
        """
        The provenance table in this collection.
        """
        return self._provenances

    @provenances.setter
    def provenances(self, value):
        self._provenances.replace_with(value)

    @property
    def indexes(self) -> TableCollectionIndexes:
        """
        The edge insertion and removal indexes.
        """
        return TableCollectionIndexes(**self._indexes.asdict())

    @indexes.setter
    def indexes(self, indexes):
        self._check_mutable()
        d = indexes.asdict()
        if len(d) == 0:
            self._indexes = TableCollectionIndexes()
            return
        if len(d) != 2:
            raise TypeError("edge_insertion_order and edge_removal_order are required")
        arrays = {}
        for name, value in d.items():
            value = util.safe_np_int_cast(value, np.int32, copy=True)
            if len(value) != self.edges.num_rows:
                raise exceptions.MalformedEncodingError(
                    f"{name} must have one entry per edge",
                    table="indexes",
                    value=len(value),
                )
            _check_ids("indexes", name, value, self.edges.num_rows, allow_null=False)
            arrays[name] = value
        self._indexes = TableCollectionIndexes(**arrays)

    @property
    def sequence_length(self) -> float:
        """
        The sequence length defining the coordinate space.
        """
        return self._sequence_length

    @sequence_length.setter
    def sequence_length(self, sequence_length):
        self._check_mutable()
        sequence_length = float(sequence_length)
        if not math.isfinite(sequence_length) or sequence_length < 0:
            raise ValueError("Sequence length must be finite and non-negative")
        self._sequence_length = sequence_length

    @property
    def strict_references(self) -> bool:
        """
        True if referenced ids are checked when rows are added.
        """
        return self._strict_references

    @property
    def file_uuid(self) -> str:
        """
        The UUID for the file this TableCollection is derived
        from, or None if not derived from a file.
        """
        return self._file_uuid

    @property
    def time_units(self) -> str:
        """
        The units used for the time dimension of this TableCollection
        """
        return self._time_units

    @time_units.setter
    def time_units(self, time_units: str) -> None:
        self._check_mutable()
        if not isinstance(time_units, str):
            raise TypeError("time_units must be a str")
        self._time_units = time_units

    def asdict(self):
        """
        Returns the nested dictionary representation of this TableCollection
        used for interchange.

        :return: The dictionary representation of this table collection.
        :rtype: dict
        """
        ret = {
            "encoding_version": (1, 6),
            "sequence_length": self.sequence_length,
            "time_units": self.time_units,
            "metadata_schema": self._metadata_schema_string,
            "metadata": self._metadata_bytes,
            "indexes": self._indexes.asdict(),
        }
        for name, table in self.table_name_map.items():
            ret[name] = table.asdict()
        return ret

    @classmethod
    def fromdict(cls, tables_dict, *, strict_references=True):
        """
        Returns a new TableCollection from the nested dictionary representation
        returned by :meth:`.asdict`.
        """
        tables = cls(
            tables_dict["sequence_length"], strict_references=strict_references
        )
        tables.time_units = tables_dict.get("time_units", "unknown")
        schema = tables_dict.get("metadata_schema", "")
        metadata.parse_metadata_schema(schema)
        tables._metadata_schema_string = schema
        tables._metadata_bytes = bytes(tables_dict.get("metadata", b""))
        for name, table in tables.table_name_map.items():
            if name in tables_dict:
                table.set_columns(**tables_dict[name])
        indexes = tables_dict.get("indexes", {})
        tables.indexes = TableCollectionIndexes(**indexes)
        return tables

    @property
    def table_name_map(self) -> Dict:
        """
        Returns a dictionary mapping table names to the corresponding
        table instances, in the order in which they are stored.
        """
        return {
            "provenances": self.provenances,
            "populations": self.populations,
            "individuals": self.individuals,
            "nodes": self.nodes,
            "edges": self.edges,
            "sites": self.sites,
            "mutations": self.mutations,
            "migrations": self.migrations,
        }

    @property
    def nbytes(self) -> int:
        """
        Returns the total number of bytes required to store the data
        in this table collection. Note that this may not be equal to
        the actual memory footprint.
        """
        return sum(
            (
                8,  # sequence_length takes 8 bytes
                len(self._metadata_bytes),
                len(self._metadata_schema_string.encode()),
                len(self.time_units.encode()),
                self._indexes.nbytes,
                sum(table.nbytes for table in self.table_name_map.values()),
            )
        )

    def __str__(self):
        """
        Return a plain text summary of this TableCollection
        """
        return "\n".join(
            [
                "TableCollection",
                "",
                f"Sequence Length: {self.sequence_length}",
                f"Time units: {self.time_units}",
                f"Metadata: {util.render_metadata(self.metadata)}",
                "",
                "Individuals",
                str(self.individuals),
                "Nodes",
                str(self.nodes),
                "Edges",
                str(self.edges),
                "Sites",
                str(self.sites),
                "Mutations",
                str(self.mutations),
                "Migrations",
                str(self.migrations),
                "Populations",
                str(self.populations),
                "Provenances",
                str(self.provenances),
            ]
        )

    def equals(
        self,
        other,
        *,
        ignore_metadata=False,
        ignore_ts_metadata=False,
        ignore_provenance=False,
        ignore_timestamps=False,
        ignore_tables=False,
        ignore_indexes=False,
    ):
        """
        Returns True if  `self` and `other` are equal. By default, two table
        collections are considered equal if their

        - ``sequence_length`` and ``time_units`` properties are identical;
        - top-level tree sequence metadata and metadata schemas are
          byte-wise identical;
        - constituent tables are byte-wise identical;
        - edge indexes are identical.

        :param TableCollection other: Another table collection.
        :param bool ignore_metadata: If True *all* metadata and metadata schemas
            will be excluded from the comparison. This includes the top-level
            tree sequence and constituent table metadata (default=False).
        :param bool ignore_ts_metadata: If True the top-level tree sequence
            metadata and metadata schemas will be excluded from the comparison.
            If ``ignore_metadata`` is True, this parameter has no effect.
        :param bool ignore_provenance: If True the provenance tables are
            not included in the comparison.
        :param bool ignore_timestamps: If True the provenance timestamp column
            is ignored in the comparison. If ``ignore_provenance`` is True, this
            parameter has no effect.
        :param bool ignore_tables: If True no tables are included in the
            comparison, thus comparing only the top-level information.
        :param bool ignore_indexes: If True the edge indexes are not compared.
        :return: True if other is equal to this table collection; False otherwise.
        :rtype: bool
        """
        if type(other) is not type(self):
            return False
        if self.sequence_length != other.sequence_length:
            return False
        if self.time_units != other.time_units:
            return False
        if not (ignore_metadata or ignore_ts_metadata):
            if self._metadata_schema_string != other._metadata_schema_string:
                return False
            if self._metadata_bytes != other._metadata_bytes:
                return False
        if not ignore_tables:
            for name, table in self.table_name_map.items():
                other_table = getattr(other, name)
                if name == "provenances":
                    if not ignore_provenance and not table.equals(
                        other_table, ignore_timestamps=ignore_timestamps
                    ):
                        return False
                elif not table.equals(other_table, ignore_metadata=ignore_metadata):
                    return False
            if not ignore_indexes and not self._indexes_equal(other):
                return False
        return True

    def _indexes_equal(self, other):
        a = self._indexes.asdict()
        b = other._indexes.asdict()
        return a.keys() == b.keys() and all(np.array_equal(a[k], b[k]) for k in a)

    def assert_equals(
        self,
        other,
        *,
        ignore_metadata=False,
        ignore_ts_metadata=False,
        ignore_provenance=False,
        ignore_timestamps=False,
        ignore_tables=False,
        ignore_indexes=False,
    ):
        """
        Raise an AssertionError for the first found difference between
        this and another table collection. The parameters are as for
        :meth:`.equals`.
        """
        if type(other) is not type(self):
            raise AssertionError(f"Types differ: self={type(self)} other={type(other)}")

        if self.equals(
            other,
            ignore_metadata=ignore_metadata,
            ignore_ts_metadata=ignore_ts_metadata,
            ignore_provenance=ignore_provenance,
            ignore_timestamps=ignore_timestamps,
            ignore_tables=ignore_tables,
            ignore_indexes=ignore_indexes,
        ):
            return

        if not (ignore_metadata or ignore_ts_metadata):
            if self._metadata_schema_string != other._metadata_schema_string:
                raise AssertionError(
                    f"Metadata schemas differ: self={self.metadata_schema} "
                    f"other={other.metadata_schema}"
                )
            if self._metadata_bytes != other._metadata_bytes:
                raise AssertionError(
                    f"Metadata differs: self={self._metadata_bytes} "
                    f"other={other._metadata_bytes}"
                )

        if self.time_units != other.time_units:
            raise AssertionError(
                f"Time units differs: self={self.time_units} "
                f"other={other.time_units}"
            )

        if self.sequence_length != other.sequence_length:
            raise AssertionError(
                f"Sequence Length"
                f" differs: self={self.sequence_length} other={other.sequence_length}"
            )

        if not ignore_tables:
            for table_name, table in self.table_name_map.items():
                if table_name != "provenances":
                    table.assert_equals(
                        getattr(other, table_name), ignore_metadata=ignore_metadata
                    )

            if not ignore_provenance:
                self.provenances.assert_equals(
                    other.provenances, ignore_timestamps=ignore_timestamps
                )

        raise AssertionError(
            f"Indexes differ: self={self._indexes} other={other._indexes}"
        )

    def __eq__(self, other):
        return self.equals(other)

    def __getstate__(self):
        return self.asdict()

    # Unpickle support
    def __setstate__(self, state):
        self.__init__()
        new = TableCollection.fromdict(state)
        for name, table in self.table_name_map.items():
            table.replace_with(new.table_name_map[name])
        self.sequence_length = new.sequence_length
        self.time_units = new.time_units
        self._metadata_bytes = new._metadata_bytes
        self._metadata_schema_string = new._metadata_schema_string
        self._indexes = new._indexes

    @staticmethod
    def load(file_or_path, *, skip_tables=False):
        """
        Load a table collection from the specified file path or open file
        object.

        :param str file_or_path: The file object or path to read.
        :param bool skip_tables: If True, only the top-level information of
            the file is read. The tables will be empty.
        :return: The table collection read from the file.
        :rtype: TableCollection
        """
        # Imported here as the format layer depends on this module
        from treeseq import formats

        return formats.load_tables(file_or_path, skip_tables=skip_tables)

    def dump(self, file_or_path):
        """
        Writes the table collection to the specified path or file object.

        :param str file_or_path: The file object or path to write the
            TableCollection to.
        """
        from treeseq import formats

        formats.dump_tables(self, file_or_path)

    def copy(self):
        """
        Returns a deep copy of this TableCollection. The copy is always
        mutable and is not associated with any file.

        :return: A deep copy of this TableCollection.
        :rtype: treeseq.TableCollection
        """
        return TableCollection.fromdict(
            self.asdict(), strict_references=self.strict_references
        )

    def tree_sequence(self):
        """
        Returns a :class:`TreeSequence` instance from the tables defined in this
        :class:`TableCollection`. The tables are copied and checked with
        :meth:`.check_integrity`; subsequent changes to this collection are not
        visible through the returned tree sequence.

        :return: A :class:`TreeSequence` instance reflecting the structures
            defined in this set of tables.
        :rtype: .TreeSequence
        """
        return treeseq.TreeSequence(self)

    def clear(
        self,
        clear_provenance=False,
        clear_metadata_schemas=False,
        clear_ts_metadata_and_schema=False,
    ):
        """
        Remove all rows of the data tables, optionally remove provenance, metadata
        schemas and ts-level metadata. The sequence length is kept.

        :param bool clear_provenance: If ``True``, remove all rows of the provenance
            table. (Default: ``False``).
        :param bool clear_metadata_schemas: If ``True``, clear the table metadata
            schemas. (Default: ``False``).
        :param bool clear_ts_metadata_and_schema: If ``True``, clear the tree-sequence
            level metadata and schema (Default: ``False``).
        """
        self._check_mutable()
        for name, table in self.table_name_map.items():
            if name == "provenances":
                if clear_provenance:
                    table.clear()
                continue
            table.clear()
            if clear_metadata_schemas:
                table.metadata_schema = metadata.MetadataSchema.null()
        if clear_ts_metadata_and_schema:
            self._metadata_bytes = b""
            self._metadata_schema_string = ""
        self.drop_index()

    def has_index(self):
        """
        Returns True if this TableCollection is indexed for the current edges.
        """
        d = self._indexes.asdict()
        return len(d) == 2 and all(len(v) == self.edges.num_rows for v in d.values())

    def build_index(self):
        """
        Builds the edge insertion and removal indexes. Edge ids and node times
        must be valid.
        """
        self._check_mutable()
        self._check_edge_references()
        edges = self.edges
        insertion, removal = compute_edge_indexes(
            edges._view("left"),
            edges._view("right"),
            edges._view("parent"),
            edges._view("child"),
            self.nodes._view("time"),
        )
        self._indexes = TableCollectionIndexes(
            edge_insertion_order=insertion, edge_removal_order=removal
        )

    def drop_index(self):
        """
        Drops any indexes present on this table collection. If the tables are not
        currently indexed this method has no effect.
        """
        self._check_mutable()
        self._indexes = TableCollectionIndexes()

    def sort(self, edge_start=0):
        """
        Sorts the tables in place. Edges are sorted by the time of their
        parent node, then by parent id, child id and left coordinate. Sites
        are sorted by position; mutations by site, then by time (older
        first, when known) and then by their original order, except that a
        mutation always follows its parent. The ``parent`` column is updated
        to the new ids. Migrations are sorted by
        time, source, destination, left coordinate and node. Individuals
        and the other tables are not reordered.

        Row ids may change, so ids must not be cached across a sort. The
        edge indexes are dropped.

        :param int edge_start: The index in the edge table where sorting starts
            (default=0; must be <= len(edges)).
        """
        self._check_mutable()
        if not 0 <= edge_start <= self.edges.num_rows:
            raise ValueError("edge_start must be between 0 and the number of edges")
        self._check_edge_references()
        _check_ids(
            self.mutations.table_name,
            "site",
            self.mutations._view("site"),
            self.sites.num_rows,
            allow_null=False,
        )
        _check_ids(
            self.mutations.table_name,
            "parent",
            self.mutations._view("parent"),
            self.mutations.num_rows,
            allow_null=True,
        )

        edges = self.edges
        node_time = self.nodes._view("time")
        parent = edges._view("parent")[edge_start:]
        order = np.lexsort(
            (
                edges._view("left")[edge_start:],
                edges._view("child")[edge_start:],
                parent,
                node_time[parent],
            )
        )
        order = np.concatenate([np.arange(edge_start), edge_start + order])
        edges.replace_with(edges[order])

        sites = self.sites
        site_order = np.argsort(sites._view("position"), kind="stable")
        site_map = np.empty(len(site_order), dtype=np.int32)
        site_map[site_order] = np.arange(len(site_order), dtype=np.int32)
        sites.replace_with(sites[site_order])

        mutations = self.mutations
        num_mutations = mutations.num_rows
        new_site = site_map[mutations._view("site")]
        time = mutations._view("time")
        time_key = np.where(util.is_unknown_time(time), 0, -time)
        mutation_order = np.lexsort((np.arange(num_mutations), time_key, new_site))
        mutation_order = _parents_first(mutation_order, mutations._view("parent"))
        mutation_map = np.empty(num_mutations + 1, dtype=np.int32)
        mutation_map[mutation_order] = np.arange(num_mutations, dtype=np.int32)
        # Index -1 maps NULL parents to themselves
        mutation_map[-1] = NULL
        d = mutations[mutation_order].asdict()
        d["site"] = new_site[mutation_order]
        d["parent"] = mutation_map[d["parent"]]
        mutations.set_columns(**d)

        migrations = self.migrations
        migration_order = np.lexsort(
            (
                migrations._view("node"),
                migrations._view("left"),
                migrations._view("dest"),
                migrations._view("source"),
                migrations._view("time"),
            )
        )
        migrations.replace_with(migrations[migration_order])
        self.drop_index()
        logger.debug(
            "Sorted %d edges, %d sites and %d mutations",
            edges.num_rows,
            sites.num_rows,
            num_mutations,
        )

    def _check_edge_references(self):
        edges = self.edges
        num_nodes = self.nodes.num_rows
        for column in ["parent", "child"]:
            _check_ids(
                edges.table_name,
                column,
                edges._view(column),
                num_nodes,
                allow_null=False,
            )

    def _resolve_sequence_length(self):
        sequence_length = self.sequence_length
        if sequence_length == 0:
            rights = np.concatenate(
                [self.edges._view("right"), self.migrations._view("right")]
            )
            # Site positions must lie strictly below the sequence length
            coordinates = np.concatenate([rights, self.sites._view("position") + 1])
            coordinates = coordinates[np.isfinite(coordinates)]
            if len(coordinates) > 0:
                sequence_length = max(float(np.max(coordinates)), 0.0)
            if sequence_length > 0:
                logger.warning(
                    "Sequence length not set; using the largest coordinate %g",
                    sequence_length,
                )
        if not sequence_length > 0:
            raise exceptions.LibraryError(
                "Sequence length must be positive; set it or add edges or sites"
            )
        return sequence_length

    def _check_offsets(self):
        for table in self.table_name_map.values():
            for name in table.ragged_columns:
                problem = util.check_offsets(
                    table._view(name + "_offset"),
                    len(table._view(name)),
                    name=f"{name}_offset",
                )
                if problem is not None:
                    raise exceptions.MalformedEncodingError(
                        problem, table=table.table_name
                    )

    def _check_nodes(self):
        nodes = self.nodes
        time = nodes._view("time")
        _check_finite(nodes.table_name, "time", time)
        if np.any(time < 0):
            j = _first(time < 0)
            raise exceptions.TimeOrderError(
                "Node times must be non-negative",
                table=nodes.table_name,
                row=j,
                value=float(time[j]),
            )
        _check_ids(
            nodes.table_name,
            "population",
            nodes._view("population"),
            self.populations.num_rows,
            allow_null=True,
        )
        _check_ids(
            nodes.table_name,
            "individual",
            nodes._view("individual"),
            self.individuals.num_rows,
            allow_null=True,
        )

    def _check_individuals(self):
        individuals = self.individuals
        parents = individuals._view("parents")
        offset = individuals._view("parents_offset")
        _check_ids(
            individuals.table_name,
            "parents",
            parents,
            individuals.num_rows,
            allow_null=True,
            offset=offset,
        )
        owner = np.repeat(
            np.arange(individuals.num_rows), np.diff(offset.astype(np.int64))
        )
        bad = parents == owner
        if np.any(bad):
            j = _first(bad)
            raise exceptions.OutOfBoundsError(
                "Individuals cannot be their own parents",
                table=individuals.table_name,
                row=int(owner[j]),
                value=int(parents[j]),
            )

    def _check_edges(self, sequence_length):
        edges = self.edges
        left = edges._view("left")
        right = edges._view("right")
        _check_intervals(edges.table_name, left, right, sequence_length)
        self._check_edge_references()
        parent = edges._view("parent")
        child = edges._view("child")
        time = self.nodes._view("time")
        bad = time[parent] <= time[child]
        if np.any(bad):
            j = _first(bad)
            raise exceptions.TimeOrderError(
                "Parent time must be greater than child time",
                table=edges.table_name,
                row=j,
                value=(float(time[parent[j]]), float(time[child[j]])),
            )
        order = np.lexsort((left, child))
        same_child = child[order][1:] == child[order][:-1]
        overlapping = same_child & (left[order][1:] < right[order][:-1])
        if np.any(overlapping):
            j = int(order[_first(overlapping) + 1])
            raise exceptions.OverlappingEdgesError(
                "Edges for a child must not overlap",
                table=edges.table_name,
                row=j,
                value=int(child[j]),
            )

    def _check_sites(self, sequence_length):
        sites = self.sites
        position = sites._view("position")
        _check_finite(sites.table_name, "position", position)
        bad = (position < 0) | (position >= sequence_length)
        if np.any(bad):
            j = _first(bad)
            raise exceptions.OutOfBoundsError(
                "Site position must be within the sequence",
                table=sites.table_name,
                row=j,
                value=float(position[j]),
            )
        order = np.argsort(position, kind="stable")
        duplicate = position[order][1:] == position[order][:-1]
        if np.any(duplicate):
            j = int(order[_first(duplicate) + 1])
            raise exceptions.DuplicatePositionsError(
                "Site positions must be unique",
                table=sites.table_name,
                row=j,
                value=float(position[j]),
            )

    def _check_mutations(self):
        mutations = self.mutations
        name = mutations.table_name
        site = mutations._view("site")
        node = mutations._view("node")
        parent = mutations._view("parent")
        time = mutations._view("time")
        num_mutations = mutations.num_rows
        _check_ids(name, "site", site, self.sites.num_rows, allow_null=False)
        _check_ids(name, "node", node, self.nodes.num_rows, allow_null=False)
        _check_ids(name, "parent", parent, num_mutations, allow_null=True)
        has_parent = parent != NULL
        bad = has_parent & (site[parent] != site)
        if np.any(bad):
            j = _first(bad)
            raise exceptions.TimeOrderError(
                "A mutation's parent must be at the same site",
                table=name,
                row=j,
                value=int(parent[j]),
            )
        ids = np.arange(num_mutations)
        if np.any(has_parent & (parent >= ids)):
            _check_mutation_cycles(parent)
            j = _first(has_parent & (parent >= ids))
            raise exceptions.TimeOrderError(
                "A mutation's parent must have a smaller id",
                table=name,
                row=j,
                value=int(parent[j]),
            )
        known = ~util.is_unknown_time(time)
        bad = known & ~np.isfinite(time)
        if np.any(bad):
            j = _first(bad)
            raise exceptions.NonFiniteValueError(
                "Mutation times must be finite or UNKNOWN_TIME",
                table=name,
                row=j,
                value=float(time[j]),
            )
        bad = known & (time < self.nodes._view("time")[node])
        if np.any(bad):
            j = _first(bad)
            raise exceptions.TimeOrderError(
                "A mutation's time must be >= the node time, or be marked as "
                "'unknown'",
                table=name,
                row=j,
                value=float(time[j]),
            )
        parent_time = time[parent]
        bad = has_parent & known & ~util.is_unknown_time(parent_time)
        bad &= time > parent_time
        if np.any(bad):
            j = _first(bad)
            raise exceptions.TimeOrderError(
                "A mutation's time must be <= the parent mutation time",
                table=name,
                row=j,
                value=float(time[j]),
            )

    def _check_migrations(self, sequence_length):
        migrations = self.migrations
        name = migrations.table_name
        _check_intervals(
            name, migrations._view("left"), migrations._view("right"), sequence_length
        )
        _check_ids(
            name, "node", migrations._view("node"), self.nodes.num_rows, allow_null=False
        )
        for column in ["source", "dest"]:
            _check_ids(
                name,
                column,
                migrations._view(column),
                self.populations.num_rows,
                allow_null=False,
            )
        _check_finite(name, "time", migrations._view("time"))

    def check_integrity(self):
        """
        Checks that the tables satisfy every requirement for defining a
        tree sequence, raising a subclass of :class:`.LibraryError` describing
        the first problem found. Edges and sites need not be sorted.

        If the sequence length is zero it is inferred as the largest right
        coordinate over the edges and migrations; the collection itself is
        not changed.

        :return: The sequence length of the tree sequence.
        :rtype: float
        """
        sequence_length = self._resolve_sequence_length()
        self._check_offsets()
        self._check_nodes()
        self._check_individuals()
        self._check_edges(sequence_length)
        self._check_sites(sequence_length)
        self._check_mutations()
        self._check_migrations(sequence_length)
        return sequence_length


def _parents_first(order, parent):
    """
    Returns the specified mutation order, with any mutation that precedes its
    parent moved to directly after it. Mutations on a parent cycle keep their
    relative order at the end.
    """
    emitted = np.zeros(len(order), dtype=bool)
    waiting = {}
    ret = []
    for u in order:
        p = parent[u]
        if p != NULL and not emitted[p]:
            waiting.setdefault(p, []).append(u)
            continue
        stack = [u]
        while len(stack) > 0:
            v = stack.pop()
            emitted[v] = True
            ret.append(v)
            stack.extend(reversed(waiting.pop(v, [])))
    ret.extend(u for u in order if not emitted[u])
    return np.array(ret, dtype=np.int64)


def _check_mutation_cycles(parent):
    # 0: unvisited, 1: on the current path, 2: finished
    state = np.zeros(len(parent), dtype=np.int8)
    for start in range(len(parent)):
        path = []
        u = start
        while u != NULL and state[u] == 0:
            state[u] = 1
            path.append(u)
            u = parent[u]
        if u != NULL and state[u] == 1:
            raise exceptions.CyclicMutationParentError(
                "Mutation parent chain contains a cycle",
                table="mutations",
                row=int(u),
            )
        state[path] = 2
