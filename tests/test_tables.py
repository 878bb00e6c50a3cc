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
Test cases for the tables and the checks made when they are built and sealed.
"""
import logging
import pickle

import numpy as np
import pytest

import tests.tsutil as tsutil
import treeseq
import treeseq.exceptions as exceptions


def assert_row_matches(row, values):
    for name, value in values.items():
        actual = getattr(row, name)
        if isinstance(actual, np.ndarray):
            assert np.array_equal(actual, value)
        elif name == "time" and treeseq.is_unknown_time(value):
            assert treeseq.is_unknown_time(actual)
        else:
            assert actual == value


class CommonTestsMixin:
    """
    Tests that apply to every table type. Subclasses set ``table_class`` and
    provide ``make_rows`` returning keyword arguments for ``add_row``.
    """

    num_rows = 5

    def make_table(self, **kwargs):
        table = self.table_class(**kwargs)
        for row in self.make_rows(self.num_rows):
            table.add_row(**row)
        return table

    def test_add_row_returns_ids(self):
        table = self.table_class()
        for j, row in enumerate(self.make_rows(self.num_rows)):
            assert table.add_row(**row) == j
        assert table.num_rows == self.num_rows
        assert len(table) == self.num_rows

    def test_row_values(self):
        table = self.make_table()
        rows = self.make_rows(self.num_rows)
        for j, values in enumerate(rows):
            assert_row_matches(table[j], values)
        for row, values in zip(table, rows):
            assert_row_matches(row, values)

    def test_negative_index(self):
        table = self.make_table()
        assert table[-1] == table[self.num_rows - 1]
        assert table[-self.num_rows] == table[0]

    @pytest.mark.parametrize("offset", [0, 1, 100])
    def test_index_out_of_bounds(self, offset):
        table = self.make_table()
        with pytest.raises(IndexError):
            table[self.num_rows + offset]
        with pytest.raises(IndexError):
            table[-self.num_rows - 1 - offset]

    def test_bad_index_type(self):
        table = self.make_table()
        with pytest.raises(TypeError):
            table[0.5]

    def test_copy(self):
        table = self.make_table()
        copy = table.copy()
        assert copy is not table
        assert copy == table
        copy.truncate(1)
        assert copy != table
        assert table.num_rows == self.num_rows

    def test_clear(self):
        table = self.make_table()
        table.clear()
        assert table.num_rows == 0
        assert len(list(table)) == 0
        assert table == self.table_class()

    def test_truncate(self):
        table = self.make_table()
        first = table[0]
        table.truncate(1)
        assert table.num_rows == 1
        assert table[0] == first
        for bad in [-1, 2]:
            with pytest.raises(ValueError, match="truncate"):
                table.truncate(bad)

    def test_truncate_then_add(self):
        table = self.make_table()
        rows = self.make_rows(self.num_rows)
        table.truncate(2)
        table.add_row(**rows[-1])
        assert table.num_rows == 3
        assert_row_matches(table[2], rows[-1])

    def test_slice(self):
        table = self.make_table()
        subset = table[1:3]
        assert subset.num_rows == 2
        assert subset[0] == table[1]
        assert subset[1] == table[2]

    def test_fancy_index(self):
        table = self.make_table()
        subset = table[[3, 0, -1]]
        assert subset.num_rows == 3
        assert subset[0] == table[3]
        assert subset[1] == table[0]
        assert subset[2] == table[self.num_rows - 1]

    def test_boolean_mask(self):
        table = self.make_table()
        mask = np.zeros(self.num_rows, dtype=bool)
        mask[[1, 4]] = True
        subset = table[mask]
        assert subset.num_rows == 2
        assert subset[0] == table[1]
        assert subset[1] == table[4]
        with pytest.raises(IndexError):
            table[mask[:-1]]

    def test_max_rows_increment(self):
        table = self.table_class(max_rows_increment=3)
        assert table.max_rows_increment == 3
        for row in self.make_rows(self.num_rows):
            table.add_row(**row)
        assert table.max_rows == 6
        with pytest.raises(ValueError):
            self.table_class(max_rows_increment=-1)

    def test_default_growth(self):
        table = self.make_table()
        assert table.max_rows >= table.num_rows

    def test_set_columns_round_trip(self):
        table = self.make_table()
        other = self.table_class()
        other.set_columns(**table.asdict())
        assert other == table

    def test_append_columns(self):
        table = self.make_table()
        columns = table.asdict()
        columns.pop("metadata_schema", None)
        other = self.table_class()
        other.append_columns(**columns)
        other.append_columns(**columns)
        assert other.num_rows == 2 * self.num_rows
        for j in range(self.num_rows):
            assert other[j] == table[j]
            assert other[self.num_rows + j] == table[j]

    def test_bad_offsets(self):
        table = self.make_table()
        ragged = [name for name in table.ragged_columns][0]
        columns = table.asdict()
        offset = columns[ragged + "_offset"].copy()
        offset[-1] += 1
        columns[ragged + "_offset"] = offset
        with pytest.raises(exceptions.MalformedEncodingError):
            self.table_class().set_columns(**columns)

    def test_offset_length_mismatch(self):
        table = self.make_table()
        ragged = [name for name in table.ragged_columns][0]
        columns = table.asdict()
        columns[ragged + "_offset"] = columns[ragged + "_offset"][:-1]
        with pytest.raises(exceptions.MalformedEncodingError):
            self.table_class().set_columns(**columns)

    def test_ragged_columns_must_be_paired(self):
        table = self.make_table()
        ragged = [name for name in table.ragged_columns][0]
        columns = table.asdict()
        del columns[ragged + "_offset"]
        with pytest.raises(TypeError, match="together|required"):
            self.table_class().set_columns(**columns)

    def test_column_attributes_are_copies(self):
        table = self.make_table()
        for name in table.column_names:
            value = getattr(table, name)
            assert isinstance(value, np.ndarray)
            before = table.copy()
            value[:] = 0
            assert table == before

    def test_pickle(self):
        table = self.make_table()
        other = pickle.loads(pickle.dumps(table))
        assert other == table
        assert other is not table

    def test_str(self):
        table = self.make_table()
        s = str(table)
        assert "id" in s
        assert len(s.splitlines()) > self.num_rows

    def test_str_truncated(self):
        table = self.make_table()
        full = str(table)
        treeseq.set_print_options(max_lines=2)
        try:
            truncated = str(table)
        finally:
            treeseq.set_print_options(max_lines=40)
        assert len(truncated.splitlines()) < len(full.splitlines())

    def test_equals_other_type(self):
        table = self.make_table()
        assert table != "table"
        assert not table.equals(None)

    def test_nbytes(self):
        table = self.make_table()
        assert table.nbytes > 0
        assert self.table_class().nbytes >= 0

    def test_append_row_object(self):
        table = self.make_table()
        other = self.table_class()
        for row in table:
            other.append(row)
        assert other == table

    def test_setitem(self):
        table = self.make_table()
        table[0] = table[-1]
        assert table[0] == table[-1]
        with pytest.raises(IndexError):
            table[self.num_rows] = table[0]
        with pytest.raises(TypeError):
            table[0:1] = table[0]


class MetadataTestsMixin:
    """
    Tests for the raw byte contract of metadata columns.
    """

    @pytest.mark.parametrize(
        "payload", [b"", b"\x00", b"a\x00b\x00", bytes(range(256)), b"{}"]
    )
    def test_raw_bytes_round_trip(self, payload):
        table = self.make_table()
        table.set_metadata(1, payload)
        assert table.metadata_bytes(1) == payload
        assert table[1].metadata == payload
        assert table.metadata_bytes(-self.num_rows + 1) == payload

    def test_set_metadata_leaves_other_rows(self):
        table = self.make_table()
        before = [table.metadata_bytes(j) for j in range(self.num_rows)]
        table.set_metadata(2, b"\x00" * 17)
        for j in range(self.num_rows):
            if j != 2:
                assert table.metadata_bytes(j) == before[j]

    def test_set_metadata_out_of_bounds(self):
        table = self.make_table()
        with pytest.raises(IndexError):
            table.set_metadata(self.num_rows, b"")
        with pytest.raises(IndexError):
            table.metadata_bytes(self.num_rows)

    def test_packset_metadata(self):
        table = self.make_table()
        payloads = [bytes([j]) * j for j in range(self.num_rows)]
        table.packset_metadata(payloads)
        assert [table.metadata_bytes(j) for j in range(self.num_rows)] == payloads

    def test_null_schema_requires_bytes(self):
        table = self.make_table()
        with pytest.raises(TypeError):
            table.set_metadata(0, {"a": 1})

    def test_json_schema(self):
        table = self.make_table()
        table.packset_metadata([b""] * self.num_rows)
        table.metadata_schema = treeseq.MetadataSchema.permissive_json()
        table.set_metadata(0, {"name": "x", "values": [1, 2]})
        assert table[0].metadata == {"name": "x", "values": [1, 2]}
        assert table[1].metadata == {}
        assert table.metadata_vector("name", default_value="")[0] == "x"

    def test_schema_is_not_enforced_on_raw_storage(self):
        table = self.make_table()
        table.metadata_schema = treeseq.MetadataSchema.permissive_json()
        columns = table.asdict()
        # Invalid JSON is stored unchanged; it is only a problem on decode
        other = self.table_class()
        other.set_columns(**columns)
        assert other.metadata_bytes(0) == table.metadata_bytes(0)

    def test_schema_mismatch(self):
        table = self.make_table()
        table.metadata_schema = treeseq.MetadataSchema(
            {
                "codec": "json",
                "type": "object",
                "properties": {"name": {"type": "string"}},
                "required": ["name"],
            }
        )
        with pytest.raises(exceptions.MetadataValidationError):
            table.set_metadata(0, {"other": 1})
        with pytest.raises(exceptions.SchemaMismatchError):
            table.set_metadata(0, {"other": 1})

    @pytest.mark.parametrize("payload", [b"\x00\x01not json", b"", bytearray(b"\x00")])
    def test_raw_bytes_with_schema(self, payload):
        table = self.make_table()
        table.metadata_schema = treeseq.MetadataSchema.permissive_json()
        table.set_metadata(0, payload)
        assert table.metadata_bytes(0) == bytes(payload)
        table.set_metadata(1, {"a": 1})
        assert table[1].metadata == {"a": 1}
        copy = table.copy()
        assert copy.metadata_bytes(0) == bytes(payload)

    def test_drop_metadata(self):
        table = self.make_table()
        table.metadata_schema = treeseq.MetadataSchema.permissive_json()
        table.drop_metadata()
        assert all(table.metadata_bytes(j) == b"" for j in range(self.num_rows))
        assert table.metadata_schema == treeseq.MetadataSchema.null()

    def test_drop_metadata_keep_schema(self):
        table = self.make_table()
        schema = treeseq.MetadataSchema.permissive_json()
        table.metadata_schema = schema
        table.drop_metadata(keep_schema=True)
        assert table.metadata_schema == schema
        assert table[0].metadata == {}

    def test_equals_ignore_metadata(self):
        table = self.make_table()
        other = table.copy()
        other.set_metadata(0, b"different")
        assert not table.equals(other)
        assert table.equals(other, ignore_metadata=True)
        other.metadata_schema = treeseq.MetadataSchema.permissive_json()
        assert table.equals(other, ignore_metadata=True)

    def test_bad_schema_type(self):
        table = self.make_table()
        with pytest.raises(TypeError):
            table.metadata_schema = {"codec": "json"}


common_tests = (CommonTestsMixin, MetadataTestsMixin)


class TestIndividualTable(*common_tests):
    table_class = treeseq.IndividualTable

    def make_rows(self, n):
        return [
            dict(
                flags=j,
                location=np.arange(j, dtype=np.float64) / 2,
                parents=np.arange(j, dtype=np.int32) - 1,
                metadata=bytes([j]) * (j % 3),
            )
            for j in range(n)
        ]

    def test_defaults(self):
        table = self.table_class()
        table.add_row()
        row = table[0]
        assert row.flags == 0
        assert len(row.location) == 0
        assert len(row.parents) == 0
        assert row.metadata == b""

    def test_packset_location_and_parents(self):
        table = self.make_table()
        table.packset_location([[j] for j in range(self.num_rows)])
        table.packset_parents([[] for _ in range(self.num_rows)])
        assert list(table.location) == list(range(self.num_rows))
        assert len(table.parents) == 0

    def test_flags_overflow(self):
        table = self.table_class()
        with pytest.raises(OverflowError):
            table.add_row(flags=-1)


class TestNodeTable(*common_tests):
    table_class = treeseq.NodeTable

    def make_rows(self, n):
        return [
            dict(
                flags=j % 2,
                time=j * 1.5,
                population=j - 1,
                individual=-1,
                metadata=b"node" * j,
            )
            for j in range(n)
        ]

    @pytest.mark.parametrize("time", [np.inf, -np.inf, np.nan])
    def test_non_finite_time(self, time):
        table = self.table_class()
        with pytest.raises(exceptions.NonFiniteValueError):
            table.add_row(time=time)

    @pytest.mark.parametrize("time", [-1, -1e-9])
    def test_negative_time(self, time):
        table = self.table_class()
        with pytest.raises(exceptions.TimeOrderError, match="non-negative"):
            table.add_row(time=time)
        assert table.num_rows == 0

    def test_defaults(self):
        table = self.table_class()
        table.add_row()
        assert table[0].population == treeseq.NULL
        assert table[0].individual == treeseq.NULL

    def test_set_columns_defaults(self):
        table = self.table_class()
        table.set_columns(flags=[0, 1], time=[0, 1])
        assert list(table.population) == [-1, -1]
        assert list(table.individual) == [-1, -1]
        assert list(table.metadata_offset) == [0, 0, 0]

    def test_set_columns_length_mismatch(self):
        table = self.table_class()
        with pytest.raises(ValueError, match="same length"):
            table.set_columns(flags=[0, 1], time=[0])

    def test_set_columns_missing_required(self):
        table = self.table_class()
        with pytest.raises(TypeError):
            table.set_columns(flags=[0, 1])

    def test_column_assignment(self):
        table = self.make_table()
        table.time = np.arange(self.num_rows) + 10
        assert list(table.time) == list(np.arange(self.num_rows) + 10.0)

    def test_column_dtypes(self):
        table = self.make_table()
        assert table.flags.dtype == np.uint32
        assert table.time.dtype == np.float64
        assert table.population.dtype == np.int32
        assert table.individual.dtype == np.int32
        assert table.metadata.dtype == np.int8
        assert table.metadata_offset.dtype == np.uint32


class TestEdgeTable(*common_tests):
    table_class = treeseq.EdgeTable

    def make_rows(self, n):
        return [
            dict(left=j, right=j + 1.5, parent=j + 1, child=j, metadata=b"\x00" * j)
            for j in range(n)
        ]

    @pytest.mark.parametrize(
        ["left", "right"],
        [(5, 5), (6, 5), (-1, 5), (0, np.inf), (np.nan, 1)],
    )
    def test_invalid_interval(self, left, right):
        table = self.table_class()
        with pytest.raises(exceptions.InvalidIntervalError):
            table.add_row(left=left, right=right, parent=1, child=0)

    def test_invalid_interval_context(self):
        table = self.make_table()
        with pytest.raises(exceptions.InvalidIntervalError) as info:
            table.add_row(left=5, right=5, parent=1, child=0)
        assert info.value.table == "edges"
        assert info.value.row == self.num_rows
        assert "strictly less" in str(info.value)
        assert table.num_rows == self.num_rows

    def test_non_integer_parent(self):
        table = self.table_class()
        with pytest.raises(TypeError):
            table.add_row(left=0, right=1, parent=1.5, child=0)


class TestSiteTable(*common_tests):
    table_class = treeseq.SiteTable

    def make_rows(self, n):
        return [
            dict(position=j, ancestral_state="A" * j, metadata=b"s" * j)
            for j in range(n)
        ]

    def test_packset_ancestral_state(self):
        table = self.make_table()
        states = [f"state_{j}" for j in range(self.num_rows)]
        table.packset_ancestral_state(states)
        assert [row.ancestral_state for row in table] == states

    def test_negative_position(self):
        table = self.table_class()
        with pytest.raises(exceptions.OutOfBoundsError):
            table.add_row(position=-1, ancestral_state="A")

    def test_unicode_state(self):
        table = self.table_class()
        table.add_row(position=0, ancestral_state="é")
        assert table[0].ancestral_state == "é"


class TestMutationTable(*common_tests):
    table_class = treeseq.MutationTable

    def make_rows(self, n):
        return [
            dict(
                site=j,
                node=j,
                derived_state="T" * j,
                parent=j - 1,
                metadata=b"m" * j,
                time=treeseq.UNKNOWN_TIME if j % 2 else j,
            )
            for j in range(n)
        ]

    def test_default_time_is_unknown(self):
        table = self.table_class()
        table.add_row(site=0, node=0, derived_state="A")
        assert treeseq.is_unknown_time(table[0].time)
        assert table[0].parent == treeseq.NULL

    def test_non_finite_time(self):
        table = self.table_class()
        with pytest.raises(exceptions.NonFiniteValueError):
            table.add_row(site=0, node=0, derived_state="A", time=np.inf)
        with pytest.raises(exceptions.NonFiniteValueError):
            table.add_row(site=0, node=0, derived_state="A", time=np.nan)

    def test_packset_derived_state(self):
        table = self.make_table()
        table.packset_derived_state(["X"] * self.num_rows)
        assert all(row.derived_state == "X" for row in table)

    def test_set_columns_default_time(self):
        table = self.table_class()
        table.set_columns(
            site=[0, 0],
            node=[0, 1],
            derived_state=np.array([65, 66], dtype=np.int8),
            derived_state_offset=[0, 1, 2],
        )
        assert np.all(treeseq.is_unknown_time(table.time))
        assert list(table.parent) == [-1, -1]


class TestMigrationTable(*common_tests):
    table_class = treeseq.MigrationTable

    def make_rows(self, n):
        return [
            dict(
                left=j,
                right=j + 1,
                node=j,
                source=j,
                dest=j + 1,
                time=j / 2,
                metadata=b"M" * j,
            )
            for j in range(n)
        ]

    def test_invalid_interval(self):
        table = self.table_class()
        with pytest.raises(exceptions.InvalidIntervalError):
            table.add_row(left=1, right=0, node=0, source=0, dest=1, time=0)

    def test_non_finite_time(self):
        table = self.table_class()
        with pytest.raises(exceptions.NonFiniteValueError):
            table.add_row(left=0, right=1, node=0, source=0, dest=1, time=np.inf)


class TestPopulationTable(*common_tests):
    table_class = treeseq.PopulationTable

    def make_rows(self, n):
        return [dict(metadata=bytes(range(j))) for j in range(n)]


class TestProvenanceTable(CommonTestsMixin):
    table_class = treeseq.ProvenanceTable

    def make_rows(self, n):
        return [
            dict(record=f'{{"id": {j}}}', timestamp=f"2024-01-0{j + 1}T00:00:00")
            for j in range(n)
        ]

    def test_default_timestamp(self):
        table = self.table_class()
        table.add_row(record="{}")
        assert len(table[0].timestamp) > 0
        assert table[0].record == "{}"

    def test_equals_ignore_timestamps(self):
        table = self.make_table()
        other = table.copy()
        other.packset_timestamp(["now"] * self.num_rows)
        assert not table.equals(other)
        assert table.equals(other, ignore_timestamps=True)
        with pytest.raises(AssertionError, match="timestamp"):
            table.assert_equals(other)
        table.assert_equals(other, ignore_timestamps=True)

    def test_packset_record(self):
        table = self.make_table()
        table.packset_record(["x"] * self.num_rows)
        assert all(row.record == "x" for row in table)


class TestAppendTimeChecks:
    """
    Tests for the checks made when rows are added to the tables of a
    collection with strict references.
    """

    def tables_with_nodes(self):
        tables = treeseq.TableCollection(sequence_length=10)
        tables.nodes.add_row(flags=1, time=0)
        tables.nodes.add_row(flags=1, time=0)
        tables.nodes.add_row(time=1)
        return tables

    def test_dangling_edge_child(self):
        tables = self.tables_with_nodes()
        with pytest.raises(exceptions.OutOfBoundsError) as info:
            tables.edges.add_row(left=0, right=1, parent=2, child=99)
        assert info.value.table == "edges"
        assert info.value.row == 0
        assert info.value.value == 99
        assert tables.edges.num_rows == 0

    def test_dangling_reference_alias(self):
        tables = self.tables_with_nodes()
        with pytest.raises(exceptions.DanglingReferenceError):
            tables.edges.add_row(left=0, right=1, parent=99, child=0)

    def test_right_beyond_sequence_length(self):
        tables = self.tables_with_nodes()
        with pytest.raises(exceptions.InvalidIntervalError, match="sequence length"):
            tables.edges.add_row(left=0, right=11, parent=2, child=0)

    def test_empty_interval(self):
        tables = self.tables_with_nodes()
        with pytest.raises(exceptions.InvalidIntervalError):
            tables.edges.add_row(left=5, right=5, parent=2, child=0)

    def test_parent_not_older(self):
        tables = self.tables_with_nodes()
        with pytest.raises(exceptions.TimeOrderError):
            tables.edges.add_row(left=0, right=1, parent=1, child=0)
        with pytest.raises(exceptions.TimeOrderError):
            tables.edges.add_row(left=0, right=1, parent=0, child=2)

    def test_node_population_reference(self):
        tables = self.tables_with_nodes()
        with pytest.raises(exceptions.OutOfBoundsError):
            tables.nodes.add_row(population=0)
        tables.populations.add_row()
        tables.nodes.add_row(population=0)

    def test_node_individual_reference(self):
        tables = self.tables_with_nodes()
        with pytest.raises(exceptions.OutOfBoundsError):
            tables.nodes.add_row(individual=0)
        tables.individuals.add_row()
        tables.nodes.add_row(individual=0)

    def test_individual_parents(self):
        tables = treeseq.TableCollection(1)
        tables.individuals.add_row(parents=[-1, -1])
        tables.individuals.add_row(parents=[0])
        with pytest.raises(exceptions.OutOfBoundsError, match="own parents"):
            tables.individuals.add_row(parents=[2])
        with pytest.raises(exceptions.OutOfBoundsError):
            tables.individuals.add_row(parents=[5])

    def test_site_position_beyond_sequence(self):
        tables = self.tables_with_nodes()
        with pytest.raises(exceptions.OutOfBoundsError):
            tables.sites.add_row(position=10, ancestral_state="A")
        tables.sites.add_row(position=9.99, ancestral_state="A")

    def test_mutation_references(self):
        tables = self.tables_with_nodes()
        with pytest.raises(exceptions.OutOfBoundsError):
            tables.mutations.add_row(site=0, node=0, derived_state="T")
        tables.sites.add_row(position=1, ancestral_state="A")
        with pytest.raises(exceptions.OutOfBoundsError):
            tables.mutations.add_row(site=0, node=10, derived_state="T")
        # The parent must already exist
        with pytest.raises(exceptions.OutOfBoundsError):
            tables.mutations.add_row(site=0, node=0, derived_state="T", parent=0)
        tables.mutations.add_row(site=0, node=0, derived_state="T")
        tables.mutations.add_row(site=0, node=0, derived_state="G", parent=0)

    def test_mutation_parent_at_other_site(self):
        tables = self.tables_with_nodes()
        tables.sites.add_row(position=1, ancestral_state="A")
        tables.sites.add_row(position=2, ancestral_state="A")
        tables.mutations.add_row(site=0, node=0, derived_state="T")
        with pytest.raises(exceptions.TimeOrderError, match="same site"):
            tables.mutations.add_row(site=1, node=0, derived_state="T", parent=0)

    def test_mutation_times(self):
        tables = self.tables_with_nodes()
        tables.sites.add_row(position=1, ancestral_state="A")
        with pytest.raises(exceptions.TimeOrderError, match="node time"):
            tables.mutations.add_row(site=0, node=2, derived_state="T", time=0.5)
        tables.mutations.add_row(site=0, node=2, derived_state="T", time=1.5)
        with pytest.raises(exceptions.TimeOrderError, match="parent mutation"):
            tables.mutations.add_row(
                site=0, node=0, derived_state="G", parent=0, time=2
            )
        tables.mutations.add_row(site=0, node=0, derived_state="G", parent=0, time=1)

    def test_migration_references(self):
        tables = self.tables_with_nodes()
        with pytest.raises(exceptions.OutOfBoundsError):
            tables.migrations.add_row(left=0, right=1, node=0, source=0, dest=1, time=0)
        tables.populations.add_row()
        tables.populations.add_row()
        with pytest.raises(exceptions.OutOfBoundsError):
            tables.migrations.add_row(
                left=0, right=1, node=99, source=0, dest=1, time=0
            )
        tables.migrations.add_row(left=0, right=1, node=0, source=0, dest=1, time=0)


class TestForwardReferences:
    """
    Tests for collections built with ``strict_references=False``, where
    referential checks are deferred until the tree sequence is built.
    """

    def test_edges_before_nodes(self):
        tables = treeseq.TableCollection(10, strict_references=False)
        assert not tables.strict_references
        tables.edges.add_row(left=0, right=10, parent=2, child=0)
        tables.edges.add_row(left=0, right=10, parent=2, child=1)
        tables.nodes.add_row(flags=1, time=0)
        tables.nodes.add_row(flags=1, time=0)
        tables.nodes.add_row(time=1)
        ts = tables.tree_sequence()
        assert ts.num_trees == 1
        assert ts.first().parent(0) == 2

    def test_dangling_reference_at_seal(self):
        tables = treeseq.TableCollection(10, strict_references=False)
        tables.nodes.add_row(flags=1, time=0)
        tables.edges.add_row(left=0, right=10, parent=5, child=0)
        with pytest.raises(exceptions.OutOfBoundsError):
            tables.tree_sequence()

    def test_intra_row_checks_still_run(self):
        tables = treeseq.TableCollection(10, strict_references=False)
        with pytest.raises(exceptions.InvalidIntervalError):
            tables.edges.add_row(left=5, right=5, parent=2, child=0)
        with pytest.raises(exceptions.NonFiniteValueError):
            tables.nodes.add_row(time=np.inf)

    def test_mutation_forward_parent(self):
        tables = treeseq.TableCollection(10, strict_references=False)
        tables.nodes.add_row(flags=1, time=0)
        tables.sites.add_row(position=1, ancestral_state="A")
        tables.mutations.add_row(site=0, node=0, derived_state="T", parent=1)
        tables.mutations.add_row(site=0, node=0, derived_state="G")
        with pytest.raises(exceptions.TimeOrderError, match="smaller id"):
            tables.tree_sequence()

    def test_copy_keeps_mode(self):
        tables = treeseq.TableCollection(10, strict_references=False)
        assert not tables.copy().strict_references

    def test_same_inputs_rejected(self):
        # Both modes reject the same inconsistent edge
        for strict in [True, False]:
            tables = treeseq.TableCollection(10, strict_references=strict)
            tables.nodes.add_row(flags=1, time=0)
            tables.nodes.add_row(flags=1, time=0)
            with pytest.raises(exceptions.TimeOrderError):
                tables.edges.add_row(left=0, right=10, parent=1, child=0)
                tables.tree_sequence()


class TestSealChecks:
    """
    Tests for the checks made on the complete collection when it is sealed
    into a tree sequence.
    """

    def test_overlapping_edges(self):
        tables = treeseq.TableCollection(10)
        tables.nodes.add_row(flags=1, time=0)
        tables.nodes.add_row(time=1)
        tables.nodes.add_row(time=2)
        tables.edges.add_row(left=0, right=6, parent=1, child=0)
        tables.edges.add_row(left=4, right=10, parent=2, child=0)
        with pytest.raises(exceptions.OverlappingEdgesError) as info:
            tables.tree_sequence()
        assert info.value.value == 0

    def test_adjacent_edges_allowed(self):
        tables = treeseq.TableCollection(10)
        tables.nodes.add_row(flags=1, time=0)
        tables.nodes.add_row(time=1)
        tables.nodes.add_row(time=2)
        tables.edges.add_row(left=0, right=5, parent=1, child=0)
        tables.edges.add_row(left=5, right=10, parent=2, child=0)
        assert tables.tree_sequence().num_trees == 2

    def test_duplicate_positions(self):
        tables = tsutil.simple_tables()
        tables.sites.add_row(position=1, ancestral_state="A")
        tables.sites.add_row(position=1, ancestral_state="C")
        with pytest.raises(exceptions.DuplicatePositionsError):
            tables.tree_sequence()

    def test_cyclic_mutation_parents(self):
        tables = tsutil.simple_tables()
        tables.sites.add_row(position=1, ancestral_state="A")
        tables.mutations.set_columns(
            site=[0, 0],
            node=[0, 0],
            parent=[1, 0],
            derived_state=np.array([65, 66], dtype=np.int8),
            derived_state_offset=[0, 1, 2],
        )
        with pytest.raises(exceptions.CyclicMutationParentError):
            tables.tree_sequence()

    def test_self_parent_mutation(self):
        tables = tsutil.simple_tables()
        tables.sites.add_row(position=1, ancestral_state="A")
        tables.mutations.set_columns(
            site=[0],
            node=[0],
            parent=[0],
            derived_state=np.array([65], dtype=np.int8),
            derived_state_offset=[0, 1],
        )
        with pytest.raises(exceptions.CyclicMutationParentError):
            tables.tree_sequence()

    def test_bulk_dangling_edge(self):
        tables = tsutil.simple_tables()
        tables.edges.set_columns(left=[0], right=[10], parent=[2], child=[99])
        with pytest.raises(exceptions.OutOfBoundsError):
            tables.tree_sequence()

    def test_bulk_bad_interval(self):
        tables = tsutil.simple_tables()
        tables.edges.set_columns(left=[5], right=[5], parent=[2], child=[0])
        with pytest.raises(exceptions.InvalidIntervalError):
            tables.tree_sequence()

    def test_bulk_bad_time_order(self):
        tables = tsutil.simple_tables()
        tables.edges.set_columns(left=[0], right=[10], parent=[0], child=[2])
        with pytest.raises(exceptions.TimeOrderError):
            tables.tree_sequence()

    def test_bulk_site_out_of_bounds(self):
        tables = tsutil.simple_tables()
        tables.sites.set_columns(
            position=[10],
            ancestral_state=np.array([65], dtype=np.int8),
            ancestral_state_offset=[0, 1],
        )
        with pytest.raises(exceptions.OutOfBoundsError):
            tables.tree_sequence()

    def test_bulk_mutation_parent_other_site(self):
        tables = tsutil.simple_tables()
        tables.sites.add_row(position=1, ancestral_state="A")
        tables.sites.add_row(position=2, ancestral_state="A")
        tables.mutations.set_columns(
            site=[0, 1],
            node=[0, 0],
            parent=[-1, 0],
            derived_state=np.array([65, 66], dtype=np.int8),
            derived_state_offset=[0, 1, 2],
        )
        with pytest.raises(exceptions.TimeOrderError, match="same site"):
            tables.tree_sequence()

    def test_bulk_individual_self_parent(self):
        tables = tsutil.simple_tables()
        tables.individuals.set_columns(
            flags=[0], parents=[0], parents_offset=[0, 1]
        )
        with pytest.raises(exceptions.OutOfBoundsError, match="own parents"):
            tables.tree_sequence()

    def test_bulk_non_finite_node_time(self):
        tables = tsutil.simple_tables()
        tables.nodes.set_columns(flags=[1, 1, 0], time=[0, 0, np.inf])
        with pytest.raises(exceptions.NonFiniteValueError):
            tables.tree_sequence()

    def test_bulk_negative_node_time(self):
        tables = treeseq.TableCollection(sequence_length=1)
        tables.nodes.set_columns(flags=[1, 0], time=[-5, -1])
        tables.edges.set_columns(left=[0], right=[1], parent=[1], child=[0])
        with pytest.raises(exceptions.TimeOrderError, match="non-negative") as info:
            tables.tree_sequence()
        assert info.value.table == "nodes"
        assert info.value.row == 0

    def test_failed_seal_leaves_tables(self):
        tables = tsutil.simple_tables()
        tables.edges.set_columns(left=[5], right=[5], parent=[2], child=[0])
        before = tables.copy()
        with pytest.raises(exceptions.InvalidIntervalError):
            tables.tree_sequence()
        assert tables == before

    def test_unsorted_edges(self):
        tables = tsutil.simple_tables()
        edges = tables.edges.copy()
        tables.edges.clear()
        tables.edges.append(edges[1])
        tables.edges.append(edges[0])
        ts = tables.tree_sequence()
        assert ts.num_trees == 2
        assert ts.first().children(2) in [(0, 1), (1, 0)]

    def test_inferred_sequence_length(self):
        tables = treeseq.TableCollection()
        tables.nodes.add_row(flags=1, time=0)
        tables.nodes.add_row(time=1)
        tables.edges.add_row(left=0, right=7, parent=1, child=0)
        ts = tables.tree_sequence()
        assert ts.sequence_length == 7
        assert tables.sequence_length == 0

    def test_inferred_sequence_length_from_sites(self, caplog):
        tables = treeseq.TableCollection()
        tables.nodes.add_row(flags=1, time=0)
        tables.nodes.add_row(time=1)
        tables.edges.add_row(left=0, right=7, parent=1, child=0)
        tables.sites.add_row(position=8.5, ancestral_state="A")
        with caplog.at_level(logging.WARNING, logger="treeseq.tables"):
            ts = tables.tree_sequence()
        assert ts.sequence_length == 9.5
        assert ts.site(0).position == 8.5
        assert "Sequence length not set" in caplog.text

    def test_zero_sequence_length(self):
        tables = treeseq.TableCollection()
        tables.nodes.add_row(flags=1, time=0)
        with pytest.raises(exceptions.LibraryError, match="Sequence length"):
            tables.tree_sequence()

    def test_check_integrity_returns_length(self):
        tables = tsutil.simple_tables()
        assert tables.check_integrity() == 10


class TestTableCollection:
    def test_defaults(self):
        tables = treeseq.TableCollection()
        assert tables.sequence_length == 0
        assert tables.time_units == "unknown"
        assert tables.file_uuid is None
        assert tables.strict_references
        assert tables.metadata == b""
        assert not tables.has_index()

    @pytest.mark.parametrize("value", [-1, np.inf, np.nan])
    def test_bad_sequence_length(self, value):
        with pytest.raises(ValueError):
            treeseq.TableCollection(value)

    def test_table_name_map(self):
        tables = treeseq.TableCollection(1)
        assert list(tables.table_name_map.keys()) == [
            "provenances",
            "populations",
            "individuals",
            "nodes",
            "edges",
            "sites",
            "mutations",
            "migrations",
        ]
        for name, table in tables.table_name_map.items():
            assert getattr(tables, name) is table

    def test_copy(self):
        tables = tsutil.all_fields_tables()
        copy = tables.copy()
        assert copy == tables
        copy.nodes.truncate(0)
        assert copy != tables
        assert tables.nodes.num_rows > 0

    def test_asdict_fromdict(self):
        tables = tsutil.all_fields_tables()
        tables.build_index()
        other = treeseq.TableCollection.fromdict(tables.asdict())
        other.assert_equals(tables)

    def test_pickle(self):
        tables = tsutil.all_fields_tables()
        other = pickle.loads(pickle.dumps(tables))
        assert other == tables

    def test_assign_table(self):
        tables = tsutil.simple_tables()
        other = treeseq.TableCollection(10)
        other.nodes = tables.nodes
        assert other.nodes == tables.nodes
        assert other.nodes is not tables.nodes

    def test_clear(self):
        tables = tsutil.all_fields_tables()
        tables.build_index()
        sequence_length = tables.sequence_length
        tables.clear()
        assert tables.sequence_length == sequence_length
        assert tables.nodes.num_rows == 0
        assert tables.edges.num_rows == 0
        assert tables.provenances.num_rows == 1
        assert not tables.has_index()
        assert tables.populations.metadata_schema != treeseq.MetadataSchema.null()

    def test_clear_everything(self):
        tables = tsutil.all_fields_tables()
        tables.clear(
            clear_provenance=True,
            clear_metadata_schemas=True,
            clear_ts_metadata_and_schema=True,
        )
        assert tables.provenances.num_rows == 0
        assert tables.populations.metadata_schema == treeseq.MetadataSchema.null()
        assert tables.metadata_schema == treeseq.MetadataSchema.null()
        assert tables.metadata_bytes == b""

    def test_build_and_drop_index(self):
        tables = tsutil.simple_tables()
        assert not tables.has_index()
        tables.build_index()
        assert tables.has_index()
        indexes = tables.indexes
        assert list(indexes.edge_insertion_order) == [0, 1]
        assert list(indexes.edge_removal_order) == [1, 0]
        tables.drop_index()
        assert not tables.has_index()

    def test_stale_index(self):
        tables = tsutil.simple_tables()
        tables.build_index()
        tables.edges.truncate(1)
        assert not tables.has_index()
        ts = tables.tree_sequence()
        assert len(ts.indexes_edge_insertion_order) == 1

    def test_bad_indexes(self):
        tables = tsutil.simple_tables()
        with pytest.raises(exceptions.MalformedEncodingError):
            tables.indexes = treeseq.TableCollectionIndexes(
                edge_insertion_order=[0], edge_removal_order=[0]
            )
        with pytest.raises(exceptions.OutOfBoundsError):
            tables.indexes = treeseq.TableCollectionIndexes(
                edge_insertion_order=[0, 2], edge_removal_order=[0, 1]
            )

    def test_nbytes(self):
        tables = tsutil.all_fields_tables()
        assert tables.nbytes >= sum(t.nbytes for t in tables.table_name_map.values())

    def test_str(self):
        s = str(tsutil.all_fields_tables())
        for name in ["Nodes", "Edges", "Sites", "Mutations", "Provenances"]:
            assert name in s

    def test_time_units(self):
        tables = treeseq.TableCollection(1)
        tables.time_units = "generations"
        assert tables.time_units == "generations"

    def test_metadata(self):
        tables = treeseq.TableCollection(1)
        tables.metadata = b"\x00raw\x00"
        assert tables.metadata == b"\x00raw\x00"
        tables.metadata_schema = treeseq.MetadataSchema.permissive_json()
        tables.metadata = {"a": [1, 2]}
        assert tables.metadata == {"a": [1, 2]}
        assert tables.metadata_bytes == b'{"a":[1,2]}'


class TestEqualityOptions:
    def test_equal(self):
        assert tsutil.all_fields_tables() == tsutil.all_fields_tables()

    def test_other_type(self):
        tables = tsutil.simple_tables()
        assert not tables.equals(tables.nodes)
        assert tables != "tables"

    def test_sequence_length(self):
        a = tsutil.simple_tables()
        b = a.copy()
        b.sequence_length = 11
        assert not a.equals(b)
        assert not a.equals(b, ignore_tables=True)
        with pytest.raises(AssertionError, match="Sequence Length"):
            a.assert_equals(b)

    def test_time_units(self):
        a = tsutil.simple_tables()
        b = a.copy()
        b.time_units = "years"
        assert not a.equals(b)
        with pytest.raises(AssertionError, match="Time units"):
            a.assert_equals(b)

    def test_ts_metadata(self):
        a = tsutil.all_fields_tables()
        b = a.copy()
        b.metadata = {"different": True}
        assert not a.equals(b)
        assert a.equals(b, ignore_ts_metadata=True)
        assert a.equals(b, ignore_metadata=True)
        with pytest.raises(AssertionError, match="Metadata differs"):
            a.assert_equals(b)
        a.assert_equals(b, ignore_ts_metadata=True)

    def test_table_metadata(self):
        a = tsutil.all_fields_tables()
        b = a.copy()
        b.nodes.set_metadata(0, b"changed")
        assert not a.equals(b)
        assert not a.equals(b, ignore_ts_metadata=True)
        assert a.equals(b, ignore_metadata=True)
        with pytest.raises(AssertionError, match="NodeTable row 0 differs"):
            a.assert_equals(b)

    def test_provenance(self):
        a = tsutil.all_fields_tables()
        b = a.copy()
        b.provenances.add_row("{}")
        assert not a.equals(b)
        assert a.equals(b, ignore_provenance=True)
        a.assert_equals(b, ignore_provenance=True)

    def test_timestamps(self):
        a = tsutil.all_fields_tables()
        b = a.copy()
        b.provenances.packset_timestamp(["later"] * b.provenances.num_rows)
        assert not a.equals(b)
        assert a.equals(b, ignore_timestamps=True)

    def test_tables(self):
        a = tsutil.all_fields_tables()
        b = a.copy()
        b.edges.clear()
        assert not a.equals(b)
        assert a.equals(b, ignore_tables=True)

    def test_indexes(self):
        a = tsutil.simple_tables()
        b = a.copy()
        b.build_index()
        assert not a.equals(b)
        assert a.equals(b, ignore_indexes=True)
        with pytest.raises(AssertionError, match="Indexes differ"):
            a.assert_equals(b)


class TestSort:
    def test_edges(self):
        tables = treeseq.TableCollection(10)
        tables.nodes.add_row(flags=1, time=0)
        tables.nodes.add_row(flags=1, time=0)
        tables.nodes.add_row(time=1)
        tables.nodes.add_row(time=2)
        tables.edges.add_row(left=0, right=10, parent=3, child=2)
        tables.edges.add_row(left=5, right=10, parent=2, child=1)
        tables.edges.add_row(left=0, right=10, parent=2, child=0)
        tables.edges.add_row(left=0, right=5, parent=2, child=1)
        tables.sort()
        assert list(tables.edges.parent) == [2, 2, 2, 3]
        assert list(tables.edges.child) == [0, 1, 1, 2]
        assert list(tables.edges.left) == [0, 0, 5, 0]

    def test_edge_start(self):
        tables = tsutil.simple_tables()
        tables.edges.append(tables.edges[0])
        before = tables.edges[0]
        tables.sort(edge_start=1)
        assert tables.edges[0] == before
        with pytest.raises(ValueError):
            tables.sort(edge_start=10)

    def test_sites_and_mutations(self):
        tables = tsutil.simple_tables()
        for position in [5, 1, 3]:
            tables.sites.add_row(position=position, ancestral_state="A")
        tables.mutations.add_row(site=0, node=0, derived_state="T")
        tables.mutations.add_row(site=1, node=0, derived_state="C")
        tables.mutations.add_row(site=0, node=0, derived_state="G", parent=0)
        tables.sort()
        assert list(tables.sites.position) == [1, 3, 5]
        assert list(tables.mutations.site) == [0, 2, 2]
        assert list(tables.mutations.parent) == [-1, -1, 1]
        assert [m.derived_state for m in tables.mutations] == ["C", "T", "G"]

    def test_mutations_by_time(self):
        tables = tsutil.simple_tables()
        tables.sites.add_row(position=1, ancestral_state="A")
        tables.mutations.add_row(site=0, node=0, derived_state="T", time=0.5)
        tables.mutations.add_row(site=0, node=2, derived_state="C", time=2)
        tables.sort()
        assert list(tables.mutations.time) == [2, 0.5]

    def test_unknown_time_parent_stays_first(self):
        tables = tsutil.simple_tables()
        tables.sites.add_row(position=1, ancestral_state="A")
        tables.mutations.add_row(site=0, node=2, derived_state="T")
        tables.mutations.add_row(site=0, node=0, derived_state="C", parent=0, time=1)
        tables.tree_sequence()
        tables.sort()
        assert list(tables.mutations.parent) == [-1, 0]
        assert [m.derived_state for m in tables.mutations] == ["T", "C"]
        ts = tables.tree_sequence()
        assert ts.num_mutations == 2

    def test_equal_time_parent_stays_first(self):
        tables = tsutil.simple_tables()
        tables.sites.add_row(position=1, ancestral_state="A")
        tables.mutations.set_columns(
            site=[0, 0, 0],
            node=[0, 0, 2],
            parent=[1, 2, -1],
            time=[2, 2, 2],
            derived_state=np.array([65, 67, 71], dtype=np.int8),
            derived_state_offset=[0, 1, 2, 3],
        )
        tables.sort()
        assert list(tables.mutations.parent) == [-1, 0, 1]
        assert [m.derived_state for m in tables.mutations] == ["G", "C", "A"]
        tables.tree_sequence()

    def test_random_mutations_sort_and_seal(self):
        tables = tsutil.insert_random_sites_and_mutations(
            tsutil.wf_sim(5, 4, seed=3), num_sites=10, seed=4
        )
        tables.sort()
        ts = tables.tree_sequence()
        parent = ts.mutations_parent
        assert np.all(parent < np.arange(ts.num_mutations))

    def test_drops_index(self):
        tables = tsutil.simple_tables()
        tables.build_index()
        tables.sort()
        assert not tables.has_index()

    def test_sorted_tables_give_same_trees(self):
        tables = tsutil.all_fields_tables()
        ts1 = tables.tree_sequence()
        tables.sort()
        ts2 = tables.tree_sequence()
        assert ts1.num_trees == ts2.num_trees
        for t1, t2 in zip(ts1.trees(), ts2.trees()):
            assert t1.interval == t2.interval
            assert t1.parent_dict() == t2.parent_dict()


class TestEdgeIndexes:
    def test_tie_breaks(self):
        # Four edges all starting at 0 and ending at 10
        left = np.zeros(4)
        right = np.full(4, 10.0)
        parent = np.array([3, 2, 2, 4], dtype=np.int32)
        child = np.array([2, 1, 0, 3], dtype=np.int32)
        node_time = np.array([0, 0, 1, 2, 3], dtype=np.float64)
        insertion, removal = treeseq.tables.compute_edge_indexes(
            left, right, parent, child, node_time
        )
        assert insertion.dtype == np.int32
        assert removal.dtype == np.int32
        # Oldest parents first when inserting, youngest first when removing
        assert list(insertion) == [3, 0, 2, 1]
        assert list(removal) == [2, 1, 0, 3]

    def test_coordinates_first(self):
        left = np.array([5, 0], dtype=np.float64)
        right = np.array([10, 5], dtype=np.float64)
        parent = np.array([1, 1], dtype=np.int32)
        child = np.array([0, 0], dtype=np.int32)
        node_time = np.array([0, 1], dtype=np.float64)
        insertion, removal = treeseq.tables.compute_edge_indexes(
            left, right, parent, child, node_time
        )
        assert list(insertion) == [1, 0]
        assert list(removal) == [1, 0]


class TestImmutableTables:
    def test_tables_are_frozen(self, simple_ts_fixture):
        tables = simple_ts_fixture.tables
        with pytest.raises(exceptions.ImmutableTableError):
            tables.nodes.add_row(time=5)
        with pytest.raises(exceptions.ImmutableTableError):
            tables.edges.clear()
        with pytest.raises(exceptions.ImmutableTableError):
            tables.nodes.time = np.zeros(3)
        with pytest.raises(exceptions.ImmutableTableError):
            tables.sequence_length = 100
        with pytest.raises(exceptions.ImmutableTableError):
            tables.sort()
        with pytest.raises(exceptions.ImmutableTableError):
            tables.metadata = b"x"
        with pytest.raises(ValueError):
            tables.drop_index()

    def test_reads_allowed(self, simple_ts_fixture):
        tables = simple_ts_fixture.tables
        assert tables.nodes.num_rows == 3
        assert list(tables.edges.parent) == [2, 2]
        assert tables.has_index()

    def test_dump_tables_mutable(self, simple_ts_fixture):
        tables = simple_ts_fixture.dump_tables()
        tables.nodes.add_row(time=5)
        assert tables.nodes.num_rows == 4
        assert simple_ts_fixture.num_nodes == 3

    def test_source_not_modified(self):
        tables = tsutil.simple_tables()
        ts = tables.tree_sequence()
        tables.edges.clear()
        assert ts.num_edges == 2
        assert not tables.has_index()
