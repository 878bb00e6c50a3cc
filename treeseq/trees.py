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
Module responsible for managing trees and tree sequences.
"""
from __future__ import annotations

import collections
import logging
import numbers
from dataclasses import dataclass
from typing import Any
from typing import NamedTuple

import numpy as np

import treeseq
import treeseq.metadata as metadata_module
import treeseq.tables as tables
import treeseq.util as util
from treeseq import NODE_IS_SAMPLE
from treeseq import NULL
from treeseq import UNKNOWN_TIME

logger = logging.getLogger(__name__)


class Interval(NamedTuple):
    """
    A tuple of 2 numbers, ``[left, right)``, defining an interval over the genome.
    """

    left: float | int
    """
    The left hand end of the interval. By convention this value is included
    in the interval
    """
    right: float | int
    """
    The right hand end of the interval. By convention this value is *not*
    included in the interval, i.e., the interval is half-open.
    """

    @property
    def span(self) -> float | int:
        """
        The span of the genome covered by this interval, simply ``right-left``.
        """
        return self.right - self.left

    @property
    def mid(self) -> float | int:
        """
        The middle point of this interval, simply ``left+(right-left)/2``.
        """
        return self.left + (self.right - self.left) / 2


class EdgeDiff(NamedTuple):
    interval: Interval
    edges_out: list
    edges_in: list


@metadata_module.lazy_decode()
@dataclass
class Individual(util.Dataclass):
    """
    An :ref:`individual <sec_individual_table_definition>` in a tree sequence.

    Modifying the attributes in this class will have **no effect** on the
    underlying tree sequence data.
    """

    __slots__ = ["id", "flags", "location", "parents", "nodes", "metadata"]
    id: int  # noqa A003
    """
    The integer ID of this individual. Varies from 0 to
    :attr:`TreeSequence.num_individuals` - 1."""
    flags: int
    """
    The bitwise flags for this individual.
    """
    location: np.ndarray
    """
    The spatial location of this individual as a numpy array. The location is an empty
    array if no spatial location is defined.
    """
    parents: np.ndarray
    """
    The parent individual ids of this individual as a numpy array. The parents is an
    empty array if no parents are defined.
    """
    nodes: np.ndarray
    """
    The IDs of the nodes that are associated with this individual as
    a numpy array (dtype=np.int32). If no nodes are associated with the
    individual this array will be empty.
    """
    metadata: bytes | dict | None
    """
    The :ref:`metadata <sec_metadata_definition>`
    for this individual, decoded if a schema applies.
    """

    # We need a custom eq for the numpy arrays
    def __eq__(self, other):
        return (
            isinstance(other, Individual)
            and self.id == other.id
            and self.flags == other.flags
            and np.array_equal(self.location, other.location)
            and np.array_equal(self.parents, other.parents)
            and np.array_equal(self.nodes, other.nodes)
            and self.metadata == other.metadata
        )


@metadata_module.lazy_decode()
@dataclass
class Node(util.Dataclass):
    """
    A :ref:`node <sec_node_table_definition>` in a tree sequence, corresponding
    to a single genome.

    Modifying the attributes in this class will have **no effect** on the
    underlying tree sequence data.
    """

    __slots__ = ["id", "flags", "time", "population", "individual", "metadata"]
    id: int  # noqa A003
    """
    The integer ID of this node. Varies from 0 to :attr:`TreeSequence.num_nodes` - 1.
    """
    flags: int
    """
    The bitwise flags for this node.
    """
    time: float
    """
    The birth time of this node.
    """
    population: int
    """
    The integer ID of the population that this node was born in.
    """
    individual: int
    """
    The integer ID of the individual that this node was a part of.
    """
    metadata: bytes | dict | None
    """
    The :ref:`metadata <sec_metadata_definition>` for this node, decoded if a schema
    applies.
    """

    def is_sample(self):
        """
        Returns True if this node is a sample. This value is derived from the
        ``flag`` variable.

        :rtype: bool
        """
        return bool(self.flags & NODE_IS_SAMPLE)


@metadata_module.lazy_decode(own_init=True)
@dataclass
class Edge(util.Dataclass):
    """
    An :ref:`edge <sec_edge_table_definition>` in a tree sequence.

    Modifying the attributes in this class will have **no effect** on the
    underlying tree sequence data.
    """

    __slots__ = ["left", "right", "parent", "child", "metadata", "id"]
    left: float
    """
    The left coordinate of this edge.
    """
    right: float
    """
    The right coordinate of this edge.
    """
    parent: int
    """
    The integer ID of the parent node for this edge.
    """
    child: int
    """
    The integer ID of the child node for this edge.
    """
    metadata: bytes | dict | None
    """
    The :ref:`metadata <sec_metadata_definition>` for this edge, decoded if a schema
    applies.
    """
    id: int  # noqa A003
    """
    The integer ID of this edge. Varies from 0 to
    :attr:`TreeSequence.num_edges` - 1.
    """

    # Custom init to define default values with slots
    def __init__(
        self,
        left,
        right,
        parent,
        child,
        metadata=b"",
        id=None,  # noqa A002
        metadata_decoder=None,
    ):
        self.id = id
        self.left = left
        self.right = right
        self.parent = parent
        self.child = child
        self.metadata = metadata
        self._metadata_decoder = metadata_decoder

    @property
    def span(self):
        """
        Returns the span of this edge, i.e., the right position minus the left position

        :return: The span of this edge.
        :rtype: float
        """
        return self.right - self.left

    @property
    def interval(self):
        """
        Returns the left and right positions of this edge as an :class:`Interval`

        :return: The interval covered by this edge.
        :rtype: :class:`Interval`
        """
        return Interval(self.left, self.right)


@metadata_module.lazy_decode()
@dataclass
class Site(util.Dataclass):
    """
    A :ref:`site <sec_site_table_definition>` in a tree sequence.

    Modifying the attributes in this class will have **no effect** on the
    underlying tree sequence data.
    """

    __slots__ = ["id", "position", "ancestral_state", "mutations", "metadata"]
    id: int  # noqa A003
    """
    The integer ID of this site. Varies from 0 to :attr:`TreeSequence.num_sites` - 1.
    """
    position: float
    """
    The floating point location of this site in genome coordinates.
    Ranges from 0 (inclusive) to :attr:`TreeSequence.sequence_length` (exclusive).
    """
    ancestral_state: str
    """
    The ancestral state at this site (i.e., the state inherited by nodes, unless
    mutations occur).
    """
    mutations: list
    """
    The list of mutations at this site. Mutations within a site are returned in
    increasing ID order, so that parents precede their children.
    """
    metadata: bytes | dict | None
    """
    The :ref:`metadata <sec_metadata_definition>` for this site, decoded if a schema
    applies.
    """

    def __eq__(self, other):
        return (
            isinstance(other, Site)
            and self.id == other.id
            and self.position == other.position
            and self.ancestral_state == other.ancestral_state
            and list(self.mutations) == list(other.mutations)
            and self.metadata == other.metadata
        )

    @property
    def alleles(self) -> set[str]:
        """
        Return the set of all the alleles defined at this site.
        """
        return {self.ancestral_state} | {m.derived_state for m in self.mutations}


@metadata_module.lazy_decode()
@dataclass
class Mutation(util.Dataclass):
    """
    A :ref:`mutation <sec_mutation_table_definition>` in a tree sequence.

    Modifying the attributes in this class will have **no effect** on the
    underlying tree sequence data.
    """

    __slots__ = [
        "id",
        "site",
        "node",
        "derived_state",
        "parent",
        "metadata",
        "time",
        "inherited_state",
    ]
    id: int  # noqa A003
    """
    The integer ID of this mutation. Varies from 0 to
    :attr:`TreeSequence.num_mutations` - 1.
    """
    site: int
    """
    The integer ID of the site that this mutation occurs at.
    """
    node: int
    """
    The integer ID of the first node that inherits this mutation.
    """
    derived_state: str
    """
    The derived state for this mutation. This is the state
    inherited by nodes in the subtree rooted at this mutation's node, unless
    another mutation occurs.
    """
    parent: int
    """
    The integer ID of this mutation's parent mutation, or :data:`NULL` (-1)
    if the mutation has no parent.
    """
    metadata: bytes | dict | None
    """
    The :ref:`metadata <sec_metadata_definition>` for this mutation, decoded if a schema
    applies.
    """
    time: float
    """
    The occurrence time of this mutation, or :data:`UNKNOWN_TIME`.
    """
    inherited_state: str
    """
    The state at the site before this mutation occurred: the derived state
    of the parent mutation, or the ancestral state of the site.
    """

    # To get default values on slots we define a custom init
    def __init__(
        self,
        id=NULL,  # noqa A003
        site=NULL,
        node=NULL,
        time=UNKNOWN_TIME,
        derived_state=None,
        parent=NULL,
        metadata=b"",
        inherited_state=None,
    ):
        self.id = id
        self.site = site
        self.node = node
        self.time = time
        self.derived_state = derived_state
        self.parent = parent
        self.metadata = metadata
        self.inherited_state = inherited_state

    # We need a custom eq to compare unknown times.
    def __eq__(self, other):
        return (
            isinstance(other, Mutation)
            and self.id == other.id
            and self.site == other.site
            and self.node == other.node
            and self.derived_state == other.derived_state
            and self.parent == other.parent
            and self.inherited_state == other.inherited_state
            and self.metadata == other.metadata
            and (
                self.time == other.time
                or (
                    util.is_unknown_time(self.time) and util.is_unknown_time(other.time)
                )
            )
        )


@metadata_module.lazy_decode()
@dataclass
class Migration(util.Dataclass):
    """
    A :ref:`migration <sec_migration_table_definition>` in a tree sequence.

    Modifying the attributes in this class will have **no effect** on the
    underlying tree sequence data.
    """

    __slots__ = ["left", "right", "node", "source", "dest", "time", "metadata", "id"]
    left: float
    """
    The left end of the genomic interval covered by this
    migration (inclusive).
    """
    right: float
    """
    The right end of the genomic interval covered by this migration
    (exclusive).
    """
    node: int
    """
    The integer ID of the node involved in this migration event.
    """
    source: int
    """
    The source population ID.
    """
    dest: int
    """
    The destination population ID.
    """
    time: float
    """
    The time at which this migration occurred at.
    """
    metadata: bytes | dict | None
    """
    The :ref:`metadata <sec_metadata_definition>` for this migration, decoded if a schema
    applies.
    """
    id: int  # noqa A003
    """
    The integer ID of this migration. Varies from 0 to
    :attr:`TreeSequence.num_migrations` - 1.
    """


@metadata_module.lazy_decode()
@dataclass
class Population(util.Dataclass):
    """
    A :ref:`population <sec_population_table_definition>` in a tree sequence.

    Modifying the attributes in this class will have **no effect** on the
    underlying tree sequence data.
    """

    __slots__ = ["id", "metadata"]
    id: int  # noqa A003
    """
    The integer ID of this population. Varies from 0 to
    :attr:`TreeSequence.num_populations` - 1.
    """
    metadata: bytes | dict | None
    """
    The :ref:`metadata <sec_metadata_definition>` for this population, decoded if a
    schema applies.
    """


@dataclass
class Provenance(util.Dataclass):
    """
    A provenance entry in a tree sequence, detailing how this tree
    sequence was generated, or subsequent operations on it.
    """

    __slots__ = ["id", "timestamp", "record"]
    id: int  # noqa A003
    timestamp: str
    """
    The time that this entry was made
    """
    record: str
    """
    A JSON string giving details of the provenance
    """


@dataclass(frozen=True)
class TableMetadataSchemas:
    """
    Convenience class for returning the schemas of all the tables in a tree sequence.
    """

    node: metadata_module.MetadataSchema = None
    """
    The metadata schema of the node table.
    """

    edge: metadata_module.MetadataSchema = None
    """
    The metadata schema of the edge table.
    """

    site: metadata_module.MetadataSchema = None
    """
    The metadata schema of the site table.
    """

    mutation: metadata_module.MetadataSchema = None
    """
    The metadata schema of the mutation table.
    """

    migration: metadata_module.MetadataSchema = None
    """
    The metadata schema of the migration table.
    """

    individual: metadata_module.MetadataSchema = None
    """
    The metadata schema of the individual table.
    """

    population: metadata_module.MetadataSchema = None
    """
    The metadata schema of the population table.
    """


def _read_only(array):
    view = array.view()
    view.flags.writeable = False
    return view


class Tree:
    """
    A single tree in a :class:`TreeSequence`.

    The ``tracked_samples`` parameter can be used to efficiently count the
    number of samples in a given set that exist in a particular subtree
    using the :meth:`Tree.num_tracked_samples` method.

    The :class:`Tree` class is a state-machine which has a state
    corresponding to each of the trees in the parent tree sequence. We
    transition between these states by using the seek functions like
    :meth:`Tree.first`, :meth:`Tree.last`, :meth:`Tree.seek` and
    :meth:`Tree.seek_index`. There is one more state, the so-called "null"
    or "cleared" state. This is the state that a :class:`Tree` is in
    immediately after initialisation;  it has an index of -1, and no edges. We
    can also enter the null state by calling :meth:`Tree.next` on the last
    tree in a sequence, calling :meth:`Tree.prev` on the first tree in a
    sequence or calling calling the :meth:`Tree.clear` method at any time.

    Moving to an adjacent tree only removes the edges that end at the shared
    breakpoint and inserts the edges that start there, in the order given by
    the edge insertion and removal indexes of the tree sequence. The
    topology is stored as a quintuply linked tree in numpy arrays with one
    entry per node plus an extra entry for the :attr:`.virtual_root`, whose
    children are the roots of the tree.

    :param TreeSequence tree_sequence: The parent tree sequence.
    :param list tracked_samples: The list of samples to be tracked and
        counted using the :meth:`Tree.num_tracked_samples` method.
    :param bool sample_lists: If True, maintain a linked list of the samples
        below each node as edges are inserted and removed, so that
        :meth:`Tree.samples` runs in time proportional to the number of
        samples returned.
    :param int root_threshold: The minimum number of samples that a node
        must be ancestral to for it to be in the list of roots. By default
        this is 1, so that isolated samples (representing missing data)
        are roots. To efficiently restrict the roots of the tree to
        those subtending meaningful topology, set this to 2. This value
        is only relevant when trees have multiple roots.
    """

    _STATE_ARRAYS = (
        "_parent",
        "_left_child",
        "_right_child",
        "_left_sib",
        "_right_sib",
        "_num_children",
        "_edge",
        "_num_samples",
        "_num_tracked_samples",
        "_left_sample",
        "_right_sample",
        "_next_sample",
    )

    def __init__(
        self,
        tree_sequence,
        tracked_samples=None,
        *,
        sample_lists=False,
        root_threshold=1,
    ):
        if root_threshold <= 0:
            raise ValueError("Root threshold must be greater than 0")
        self._tree_sequence = tree_sequence
        self._root_threshold = int(root_threshold)
        num_nodes = tree_sequence.num_nodes
        self._virtual_root = num_nodes
        self._num_trees = tree_sequence.num_trees
        self._sequence_length = tree_sequence.sequence_length
        self._samples = tree_sequence.samples()
        self._tracked_samples = np.zeros(0, dtype=np.int32)
        if tracked_samples is not None:
            self._tracked_samples = self._check_tracked_samples(tracked_samples)
        self._is_sample = np.zeros(num_nodes + 1, dtype=bool)
        self._is_sample[self._samples] = True
        self._sample_lists = bool(sample_lists)
        self._sample_index_map = np.full(num_nodes + 1, NULL, dtype=np.int32)
        self._sample_index_map[self._samples] = np.arange(
            len(self._samples), dtype=np.int32
        )
        self._nodes_time = tree_sequence.nodes_time
        self._edges_left = tree_sequence.edges_left
        self._edges_right = tree_sequence.edges_right
        self._edges_parent = tree_sequence.edges_parent
        self._edges_child = tree_sequence.edges_child
        self._insertion_order = tree_sequence.indexes_edge_insertion_order
        self._removal_order = tree_sequence.indexes_edge_removal_order
        for name in self._STATE_ARRAYS:
            setattr(self, name, np.zeros(num_nodes + 1, dtype=np.int32))
        self._make_arrays()
        self.clear()

    def _check_tracked_samples(self, tracked_samples):
        num_nodes = self._tree_sequence.num_nodes
        flags = self._tree_sequence.nodes_flags
        seen = set()
        for u in tracked_samples:
            u = int(u)
            if u < 0 or u >= num_nodes:
                raise ValueError(f"Tracked sample {u} is out of bounds")
            if not flags[u] & NODE_IS_SAMPLE:
                raise ValueError(f"Tracked node {u} is not a sample")
            if u in seen:
                raise ValueError(f"Duplicate tracked sample {u}")
            seen.add(u)
        return np.array(sorted(seen), dtype=np.int32)

    def _make_arrays(self):
        # Read-only views sharing memory with the state arrays
        self._array_views = {
            name: _read_only(getattr(self, name)) for name in self._STATE_ARRAYS
        }

    def copy(self):
        """
        Returns a deep copy of this tree. The returned tree will have identical state
        to this tree.

        :return: A copy of this tree.
        :rtype: Tree
        """
        copy = type(self).__new__(type(self))
        copy.__dict__.update(self.__dict__)
        for name in self._STATE_ARRAYS:
            setattr(copy, name, getattr(self, name).copy())
        copy._make_arrays()
        return copy

    @property
    def tree_sequence(self):
        """
        Returns the tree sequence that this tree is from.

        :return: The parent tree sequence for this tree.
        :rtype: :class:`TreeSequence`
        """
        return self._tree_sequence

    @property
    def root_threshold(self):
        """
        Returns the minimum number of samples that a node must be an ancestor
        of to be considered a potential root.

        :return: The root threshold.
        :rtype: int
        """
        return self._root_threshold

    def __eq__(self, other):
        ret = False
        if type(other) is type(self):
            ret = (
                self._tree_sequence is other._tree_sequence
                and self._index == other._index
                and self._root_threshold == other._root_threshold
            )
        return ret

    def __ne__(self, other):
        return not self.__eq__(other)

    #
    # Edge insertion and removal
    #

    def _insert_branch(self, p, c):
        u = self._right_child[p]
        if u == NULL:
            self._left_child[p] = c
            self._left_sib[c] = NULL
        else:
            self._right_sib[u] = c
            self._left_sib[c] = u
        self._right_sib[c] = NULL
        self._right_child[p] = c
        self._parent[c] = p
        self._num_children[p] += 1

    def _remove_branch(self, p, c):
        lsib = self._left_sib[c]
        rsib = self._right_sib[c]
        if lsib == NULL:
            self._left_child[p] = rsib
        else:
            self._right_sib[lsib] = rsib
        if rsib == NULL:
            self._right_child[p] = lsib
        else:
            self._left_sib[rsib] = lsib
        self._parent[c] = NULL
        self._left_sib[c] = NULL
        self._right_sib[c] = NULL
        self._num_children[p] -= 1

    def _insert_root(self, root):
        self._insert_branch(self._virtual_root, root)
        self._parent[root] = NULL

    def _remove_root(self, root):
        self._remove_branch(self._virtual_root, root)

    def _insert_edge(self, edge_id):
        parent = self._parent
        num_samples = self._num_samples
        num_tracked_samples = self._num_tracked_samples
        threshold = self._root_threshold
        p = self._edges_parent[edge_id]
        c = self._edges_child[edge_id]
        if parent[c] != NULL:
            raise AssertionError(
                f"Contradictory edges: inserting edge {edge_id} over node {c} "
                f"which already has parent {parent[c]}"
            )
        u = p
        while u != NULL:
            path_end = u
            path_end_was_root = num_samples[u] >= threshold
            num_samples[u] += num_samples[c]
            num_tracked_samples[u] += num_tracked_samples[c]
            u = parent[u]

        if num_samples[c] >= threshold:
            self._remove_root(c)
        if num_samples[path_end] >= threshold and not path_end_was_root:
            self._insert_root(path_end)

        self._insert_branch(p, c)
        self._num_edges += 1
        self._edge[c] = edge_id
        if self._sample_lists:
            self._update_sample_lists(p)

    def _remove_edge(self, edge_id):
        parent = self._parent
        num_samples = self._num_samples
        num_tracked_samples = self._num_tracked_samples
        threshold = self._root_threshold
        p = self._edges_parent[edge_id]
        c = self._edges_child[edge_id]
        if parent[c] != p:
            raise AssertionError(
                f"Removing edge {edge_id} which is not in the tree: "
                f"node {c} has parent {parent[c]}, not {p}"
            )
        self._remove_branch(p, c)
        self._num_edges -= 1
        self._edge[c] = NULL
        if self._sample_lists:
            self._update_sample_lists(p)

        u = p
        while u != NULL:
            path_end = u
            path_end_was_root = num_samples[u] >= threshold
            num_samples[u] -= num_samples[c]
            num_tracked_samples[u] -= num_tracked_samples[c]
            u = parent[u]

        if path_end_was_root and num_samples[path_end] < threshold:
            self._remove_root(path_end)
        if num_samples[c] >= threshold:
            self._insert_root(c)

    def _update_sample_lists(self, u):
        # Rebuild the sample lists of u and its ancestors from their children
        left_sample = self._left_sample
        right_sample = self._right_sample
        next_sample = self._next_sample
        while u != NULL:
            sample_index = self._sample_index_map[u]
            left_sample[u] = sample_index
            right_sample[u] = sample_index
            v = self._left_child[u]
            while v != NULL:
                if left_sample[v] != NULL:
                    if left_sample[u] == NULL:
                        left_sample[u] = left_sample[v]
                    else:
                        next_sample[right_sample[u]] = left_sample[v]
                    right_sample[u] = right_sample[v]
                v = self._right_sib[v]
            u = self._parent[u]

    def _step_forward(self, left):
        # Move to the tree whose interval starts at ``left``
        edges_left = self._edges_left
        edges_right = self._edges_right
        in_order = self._insertion_order
        out_order = self._removal_order
        M = len(edges_left)
        j = self._insertion_index
        k = self._removal_index
        while k < M and edges_right[out_order[k]] == left:
            self._remove_edge(out_order[k])
            k += 1
        while j < M and edges_left[in_order[j]] == left:
            self._insert_edge(in_order[j])
            j += 1
        right = self._sequence_length
        if j < M:
            right = min(right, edges_left[in_order[j]])
        if k < M:
            right = min(right, edges_right[out_order[k]])
        self._insertion_index = j
        self._removal_index = k
        self._left = float(left)
        self._right = float(right)

    def _step_reverse(self, right):
        # Move to the tree whose interval ends at ``right``. Edges starting
        # at ``right`` are the last ones inserted, and edges ending there the
        # last ones removed.
        edges_left = self._edges_left
        edges_right = self._edges_right
        in_order = self._insertion_order
        out_order = self._removal_order
        j = self._insertion_index
        k = self._removal_index
        while j > 0 and edges_left[in_order[j - 1]] == right:
            self._remove_edge(in_order[j - 1])
            j -= 1
        while k > 0 and edges_right[out_order[k - 1]] == right:
            self._insert_edge(out_order[k - 1])
            k -= 1
        left = 0
        if j > 0:
            left = max(left, edges_left[in_order[j - 1]])
        if k > 0:
            left = max(left, edges_right[out_order[k - 1]])
        self._insertion_index = j
        self._removal_index = k
        self._left = float(left)
        self._right = float(right)

    #
    # Seeking
    #

    def first(self):
        """
        Seeks to the first tree in the sequence. This can be called whether
        the tree is in the null state or not.
        """
        self.clear()
        self._step_forward(0)
        self._index = 0

    def last(self):
        """
        Seeks to the last tree in the sequence. This can be called whether
        the tree is in the null state or not.
        """
        self.clear()
        num_edges = len(self._edges_left)
        # Every edge inserted and removed: an empty tree at the sequence end
        self._insertion_index = num_edges
        self._removal_index = num_edges
        self._step_reverse(self._sequence_length)
        self._index = self._num_trees - 1

    def next(self):  # noqa A002
        """
        Seeks to the next tree in the sequence. If the tree is in the initial
        null state we seek to the first tree (equivalent to calling :meth:`~Tree.first`).
        Calling ``next`` on the last tree in the sequence results in the tree
        being cleared back into the null initial state (equivalent to calling
        :meth:`~Tree.clear`). The return value of the function indicates whether the
        tree is in a non-null state, and can be used to loop over the trees::

            # Iterate over the trees from left-to-right
            tree = treeseq.Tree(tree_sequence)
            while tree.next()
                # Do something with the tree.
                print(tree.index)
            # tree is now back in the null state.

        :return: True if the tree has been transformed into one of the trees
            in the sequence; False if the tree has been transformed into the
            null state.
        :rtype: bool
        """
        if self._index == NULL:
            self.first()
        elif self._index == self._num_trees - 1:
            self.clear()
        else:
            self._step_forward(self._right)
            self._index += 1
        return self._index != NULL

    def prev(self):
        """
        Seeks to the previous tree in the sequence. If the tree is in the initial
        null state we seek to the last tree (equivalent to calling :meth:`~Tree.last`).
        Calling ``prev`` on the first tree in the sequence results in the tree
        being cleared back into the null initial state (equivalent to calling
        :meth:`~Tree.clear`).

        :return: True if the tree has been transformed into one of the trees
            in the sequence; False if the tree has been transformed into the
            null state.
        :rtype: bool
        """
        if self._index == NULL:
            self.last()
        elif self._index == 0:
            self.clear()
        else:
            self._step_reverse(self._left)
            self._index -= 1
        return self._index != NULL

    def clear(self):
        """
        Resets this tree back to the initial null state. Calling this method
        on a tree already in the null state has no effect.
        """
        for name in ("_parent", "_left_child", "_right_child", "_left_sib"):
            getattr(self, name).fill(NULL)
        self._right_sib.fill(NULL)
        self._edge.fill(NULL)
        self._num_children.fill(0)
        self._num_samples.fill(0)
        self._num_samples[self._samples] = 1
        self._num_samples[self._virtual_root] = len(self._samples)
        self._num_tracked_samples.fill(0)
        self._num_tracked_samples[self._tracked_samples] = 1
        self._num_tracked_samples[self._virtual_root] = len(self._tracked_samples)
        self._left_sample[:] = self._sample_index_map
        self._right_sample[:] = self._sample_index_map
        self._next_sample.fill(NULL)
        self._index = NULL
        self._left = 0.0
        self._right = 0.0
        self._insertion_index = 0
        self._removal_index = 0
        self._num_edges = 0
        for u in self._samples:
            if self._num_samples[u] >= self._root_threshold:
                self._insert_root(u)

    def seek_index(self, index):
        """
        Sets the state to represent the tree at the specified
        index in the parent tree sequence. Negative indexes following the
        standard Python conventions are allowed, i.e., ``index=-1`` will
        seek to the last tree in the sequence.

        The tree is reached by stepping from whichever of the current tree,
        the first tree or the last tree is closest.

        :param int index: The tree index to seek to.
        :raises IndexError: If an index outside the acceptable range is provided.
        """
        num_trees = self._num_trees
        if index < 0:
            index += num_trees
        if index < 0 or index >= num_trees:
            raise IndexError("Index out of bounds")
        from_first = index
        from_last = num_trees - 1 - index
        if self._index == NULL or abs(index - self._index) > min(
            from_first, from_last
        ):
            if from_first <= from_last:
                self.first()
            else:
                self.last()
        while self._index < index:
            self.next()
        while self._index > index:
            self.prev()

    def seek(self, position):
        """
        Sets the state to represent the tree that covers the specified
        position in the parent tree sequence. After a successful return
        of this method we have ``tree.interval.left`` <= ``position``
        < ``tree.interval.right``.

        :param float position: The position along the sequence length to
            seek to.
        :raises ValueError: If 0 < position or position >=
            :attr:`TreeSequence.sequence_length`.
        """
        if position < 0 or position >= self._sequence_length:
            raise ValueError("Position out of bounds")
        breakpoints = self._tree_sequence.breakpoints(as_array=True)
        index = int(np.searchsorted(breakpoints, position, side="right")) - 1
        self.seek_index(index)

    #
    # Node queries
    #

    def _check_node(self, u):
        if not isinstance(u, numbers.Integral):
            raise TypeError(f"Node id must be an integer, not '{type(u).__name__}'")
        if u < 0 or u > self._virtual_root:
            raise ValueError(f"Node index {u} out of bounds")
        return int(u)

    def branch_length(self, u):
        """
        Returns the length of the branch (in units of time) joining the
        specified node to its parent. This is equivalent to::

            tree.time(tree.parent(u)) - tree.time(u)

        The branch length for a node that has no parent (e.g., a root) is
        defined as zero.

        :param int u: The node of interest.
        :return: The branch length from u to its parent.
        :rtype: float
        """
        ret = 0
        parent = self.parent(u)
        if parent != NULL:
            ret = self.time(parent) - self.time(u)
        return ret

    @property
    def total_branch_length(self):
        """
        Returns the sum of all the branch lengths in this tree (in
        units of time). This is equivalent to::

            sum(tree.branch_length(u) for u in range(tree.tree_sequence.num_nodes))

        Every edge in the tree is counted, including edges in subtrees that
        are not ancestral to any sample. The branch lengths for root nodes
        are defined as zero. Multiply by :attr:`.span` to weight the value
        by the length of genome this tree covers.

        :return: The sum of lengths of branches in this tree.
        :rtype: float
        """
        nodes = np.flatnonzero(self._edge[: self._virtual_root] != NULL)
        time = self._nodes_time
        return float(np.sum(time[self._parent[nodes]] - time[nodes]))

    def _mrca(self, u, v):
        if u == self._virtual_root or v == self._virtual_root:
            return self._virtual_root
        path = set()
        while u != NULL:
            path.add(u)
            u = int(self._parent[u])
        while v != NULL:
            if v in path:
                return v
            v = int(self._parent[v])
        return NULL

    def mrca(self, *args):
        """
        Returns the most recent common ancestor of the specified nodes.

        :param int `*args`: input node IDs, at least 2 arguments are required.
        :return: The node ID of the most recent common ancestor of the
            input nodes, or :data:`treeseq.NULL` if the nodes do not share
            a common ancestor in the tree.
        :rtype: int
        """
        if len(args) < 2:
            raise ValueError("Must supply at least two arguments")
        nodes = [self._check_node(u) for u in args]
        mrca = nodes[0]
        for node in nodes[1:]:
            mrca = self._mrca(mrca, node)
            if mrca == NULL:
                break
        return mrca

    def tmrca(self, *args):
        """
        Returns the time of the most recent common ancestor of the specified
        nodes. This is equivalent to::

            tree.time(tree.mrca(*args))

        :param `*args`: input node IDs, at least 2 arguments are required.
        :return: The time of the most recent common ancestor of all the nodes.
        :rtype: float
        :raises ValueError: If the nodes do not share a single common ancestor in this
            tree (i.e., if ``tree.mrca(*args) == treeseq.NULL``)
        """
        mrca = self.mrca(*args)
        if mrca == NULL:
            raise ValueError(f"Nodes {args} do not share a common ancestor in the tree")
        return self.time(mrca)

    def parent(self, u):
        """
        Returns the parent of the specified node. Returns
        :data:`treeseq.NULL` if u is a root or is not a node in
        the current tree.

        :param int u: The node of interest.
        :return: The parent of u.
        :rtype: int
        """
        return int(self._parent[self._check_node(u)])

    @property
    def parent_array(self):
        """
        A read-only numpy array (dtype=np.int32) encoding the parent of each node
        in this tree, such that ``tree.parent_array[u] == tree.parent(u)``
        for all ``0 <= u <= ts.num_nodes``. The array is updated in place as
        the tree moves along the sequence.
        """
        return self._array_views["_parent"]

    def ancestors(self, u):
        """
        Returns an iterator over the ancestors of node ``u`` in this tree
        (i.e. the chain of parents from ``u`` to the root).
        """
        u = self.parent(u)
        while u != NULL:
            yield u
            u = self.parent(u)

    # Quintuply linked tree structure.

    def left_child(self, u):
        """
        Returns the leftmost child of the specified node. Returns
        :data:`treeseq.NULL` if u is a leaf or is not a node in
        the current tree. The left-to-right ordering of children
        is arbitrary and should not be depended on.

        :param int u: The node of interest.
        :return: The leftmost child of u.
        :rtype: int
        """
        return int(self._left_child[self._check_node(u)])

    @property
    def left_child_array(self):
        """
        A read-only numpy array (dtype=np.int32) encoding the left child of each
        node in this tree, such that
        ``tree.left_child_array[u] == tree.left_child(u)``.
        """
        return self._array_views["_left_child"]

    def right_child(self, u):
        """
        Returns the rightmost child of the specified node. Returns
        :data:`treeseq.NULL` if u is a leaf or is not a node in
        the current tree.

        :param int u: The node of interest.
        :return: The rightmost child of u.
        :rtype: int
        """
        return int(self._right_child[self._check_node(u)])

    @property
    def right_child_array(self):
        return self._array_views["_right_child"]

    def left_sib(self, u):
        """
        Returns the sibling node to the left of u, or :data:`treeseq.NULL`
        if u does not have a left sibling.

        :param int u: The node of interest.
        :return: The sibling node to the left of u.
        :rtype: int
        """
        return int(self._left_sib[self._check_node(u)])

    @property
    def left_sib_array(self):
        return self._array_views["_left_sib"]

    def right_sib(self, u):
        """
        Returns the sibling node to the right of u, or :data:`treeseq.NULL`
        if u does not have a right sibling.

        :param int u: The node of interest.
        :return: The sibling node to the right of u.
        :rtype: int
        """
        return int(self._right_sib[self._check_node(u)])

    @property
    def right_sib_array(self):
        return self._array_views["_right_sib"]

    @property
    def num_children_array(self):
        """
        A read-only numpy array (dtype=np.int32) encoding the number of children of
        each node in this tree, such that
        ``tree.num_children_array[u] == tree.num_children(u)``.
        """
        return self._array_views["_num_children"]

    def edge(self, u):
        """
        Returns the id of the edge encoding the relationship between ``u``
        and its parent, or :data:`treeseq.NULL` if ``u`` is a root, virtual root
        or is not a node in the current tree.

        :param int u: The node of interest.
        :return: Id of edge connecting u to its parent.
        :rtype: int
        """
        return int(self._edge[self._check_node(u)])

    @property
    def edge_array(self):
        """
        A read-only numpy array (dtype=np.int32) of edge ids encoding the
        relationship between the child node ``u`` and its parent, such that
        ``tree.edge_array[u] == tree.edge(u)``.
        """
        return self._array_views["_edge"]

    @property
    def virtual_root(self):
        """
        The ID of the virtual root in this tree. This is equal to
        :attr:`TreeSequence.num_nodes`; its children are the roots.
        """
        return self._virtual_root

    @property
    def num_edges(self):
        """
        The total number of edges in this tree. This is equal to the
        number of tree sequence edges that intersect with this tree's
        genomic interval.
        """
        return self._num_edges

    @property
    def left_root(self):
        """
        The leftmost root in this tree. If there are multiple roots
        in this tree, they are siblings of this node, and so we can
        use :meth:`.right_sib` to iterate over all roots. The left-to-right
        ordering of roots is arbitrary and should not be depended on.

        :rtype: int
        """
        return self.left_child(self._virtual_root)

    @property
    def right_root(self):
        return self.right_child(self._virtual_root)

    def children(self, u):
        """
        Returns the children of the specified node ``u`` as a tuple of integer node IDs,
        from left to right. If ``u`` is a leaf, return the empty tuple.

        :param int u: The node of interest.
        :return: The children of ``u`` as a tuple of integers
        :rtype: tuple(int)
        """
        children = []
        v = self._left_child[self._check_node(u)]
        while v != NULL:
            children.append(int(v))
            v = self._right_sib[v]
        return tuple(children)

    def time(self, u):
        """
        Returns the time of the specified node. This is equivalent
        to ``tree.tree_sequence.node(u).time`` except for the special
        case of the tree's virtual root, which is defined as positive infinity.

        :param int u: The node of interest.
        :return: The time of u.
        :rtype: float
        """
        u = self._check_node(u)
        if u == self._virtual_root:
            return np.inf
        return float(self._nodes_time[u])

    def depth(self, u):
        """
        Returns the number of nodes on the path from ``u`` to a
        root, not including ``u``. Thus, the depth of a root is
        zero. As a special case, the depth of the virtual root is defined as -1.

        :param int u: The node of interest.
        :return: The depth of u.
        :rtype: int
        """
        u = self._check_node(u)
        if u == self._virtual_root:
            return -1
        depth = 0
        u = self._parent[u]
        while u != NULL:
            depth += 1
            u = self._parent[u]
        return depth

    def is_internal(self, u):
        """
        Returns True if the specified node is not a leaf. A node is internal
        if it has one or more children in the current tree.

        :param int u: The node of interest.
        :return: True if u is not a leaf node.
        :rtype: bool
        """
        return not self.is_leaf(u)

    def is_leaf(self, u):
        """
        Returns True if the specified node is a leaf. A node :math:`u` is a
        leaf if it has zero children. This includes nodes that are not
        connected to any root of the current tree.

        :param int u: The node of interest.
        :return: True if u is a leaf node.
        :rtype: bool
        """
        return self.num_children(u) == 0

    def is_isolated(self, u):
        """
        Returns True if the specified node is isolated in this tree: that is
        it has no parents and no children. Isolated sample nodes represent
        missing data.

        :param int u: The node of interest.
        :return: True if u is an isolated node.
        :rtype: bool
        """
        return self.num_children(u) == 0 and self.parent(u) == NULL

    def is_sample(self, u):
        """
        Returns True if the specified node is a sample. A node :math:`u` is a
        sample if it has been marked as a sample in the parent tree sequence.

        :param int u: The node of interest.
        :return: True if u is a sample.
        :rtype: bool
        """
        return bool(self._is_sample[self._check_node(u)])

    def is_descendant(self, u, v):
        """
        Returns True if the specified node u is a descendant of node v and False
        otherwise. A node :math:`u` is a descendant of another node :math:`v` if
        :math:`v` is on the path from :math:`u` to root. A node is considered
        to be a descendant of itself, so ``tree.is_descendant(u, u)`` will be
        True for any valid node. Every node whose path ends at a root is a
        descendant of the virtual root.

        :param int u: The descendant node.
        :param int v: The ancestral node.
        :return: True if u is a descendant of v.
        :rtype: bool
        :raises ValueError: If u or v are not valid node IDs.
        """
        u = self._check_node(u)
        v = self._check_node(v)
        if u == v:
            return True
        if u == self._virtual_root:
            return False
        while True:
            w = int(self._parent[u])
            if w == NULL:
                break
            if w == v:
                return True
            u = w
        return v == self._virtual_root and self.is_root(u)

    @property
    def num_roots(self):
        """
        The number of roots in this tree, as defined in the :attr:`~Tree.roots`
        attribute.

        :rtype: int
        """
        return int(self._num_children[self._virtual_root])

    @property
    def has_single_root(self):
        """
        ``True`` if this tree has a single root, ``False`` otherwise.

        :rtype: bool
        """
        return self.num_roots == 1

    @property
    def has_multiple_roots(self):
        """
        ``True`` if this tree has more than one root, ``False`` otherwise.

        :rtype: bool
        """
        return self.num_roots > 1

    @property
    def roots(self):
        """
        The list of roots in this tree. A root is defined as a unique endpoint of the
        paths starting at samples, subject to the condition that it is connected to at
        least :attr:`root_threshold` samples. We can define the set of roots as follows:

        .. code-block:: python

            roots = set()
            for u in tree_sequence.samples():
                while tree.parent(u) != treeseq.NULL:
                    u = tree.parent(u)
                if tree.num_samples(u) >= tree.root_threshold:
                    roots.add(u)
            # roots is now the set of all roots in this tree.
            assert sorted(roots) == sorted(tree.roots)

        The roots of the tree are returned in a list, in no particular order.

        :return: The list of roots in this tree.
        :rtype: list
        """
        roots = []
        u = self._left_child[self._virtual_root]
        while u != NULL:
            roots.append(int(u))
            u = self._right_sib[u]
        return roots

    @property
    def root(self):
        """
        The root of this tree. If the tree contains multiple roots, a ValueError is
        raised indicating that the :attr:`~Tree.roots` attribute should be used instead.

        :return: The root node.
        :rtype: int
        :raises ValueError: if this tree contains more than one root.
        """
        if self.has_multiple_roots:
            raise ValueError("More than one root exists. Use tree.roots instead")
        return self.left_root

    def is_root(self, u) -> bool:
        """
        Returns ``True`` if the specified node is a root in this tree (see
        :attr:`~Tree.roots` for the definition of a root).

        :param int u: The node of interest.
        :return: ``True`` if u is a root.
        """
        return (
            self.num_samples(u) >= self.root_threshold and self.parent(u) == NULL
        )

    @property
    def index(self):
        """
        Returns the index this tree occupies in the parent tree sequence.
        This index is zero based, so the first tree in the sequence has index 0.
        A tree in the null state has index -1.

        :return: The index of this tree.
        :rtype: int
        """
        return self._index

    @property
    def interval(self):
        """
        Returns the coordinates of the genomic interval that this tree
        represents the history of. The interval is returned as a tuple
        :math:`(l, r)` and is a half-open interval such that the left
        coordinate is inclusive and the right coordinate is exclusive.

        :return: A named tuple (l, r) representing the left-most (inclusive)
            and right-most (exclusive) coordinates of the genomic region
            covered by this tree.
        :rtype: Interval
        """
        return Interval(self._left, self._right)

    @property
    def span(self):
        """
        Returns the genomic distance that this tree spans.

        :return: The genomic distance covered by this tree.
        :rtype: float
        """
        return self.interval.span

    @property
    def mid(self):
        """
        Returns the midpoint of the genomic interval that this tree represents
        the history of.

        :rtype: float
        """
        return self.interval.mid

    #
    # Sites and mutations
    #

    def _site_ids(self):
        return self._tree_sequence._site_ids_in_interval(self._left, self._right)

    @property
    def num_sites(self):
        """
        Returns the number of sites on this tree.

        :return: The number of sites on this tree.
        :rtype: int
        """
        return len(self._site_ids())

    @property
    def num_mutations(self):
        """
        Returns the total number of mutations across all sites on this tree.

        :return: The total number of mutations over all sites on this tree.
        :rtype: int
        """
        counts = self._tree_sequence._site_num_mutations
        return int(np.sum(counts[self._site_ids()]))

    def sites(self):
        """
        Returns an iterator over all the :ref:`sites <sec_site_table_definition>`
        in this tree, in order of increasing position.

        :return: An iterator over all sites in this tree.
        """
        for site_id in self._site_ids():
            yield self._tree_sequence.site(site_id)

    def mutations(self):
        """
        Returns an iterator over all the
        :ref:`mutations <sec_mutation_table_definition>` in this tree.
        The returned iterator is equivalent to iterating over all sites
        and all mutations in each site, i.e.::

            for site in tree.sites():
                for mutation in site.mutations:
                    yield mutation

        :return: An iterator over all :class:`Mutation` objects in this tree.
        :rtype: iter(:class:`Mutation`)
        """
        for site in self.sites():
            yield from site.mutations

    #
    # Samples
    #

    def leaves(self, u=None):
        """
        Returns an iterator over all the leaves in this tree that descend from
        the specified node. If :math:`u`  is not specified, return all leaves on
        the tree (i.e. all leaves reachable from the tree root(s)).

        :param int u: The node of interest.
        :return: An iterator over all leaves in the subtree rooted at u.
        :rtype: collections.abc.Iterable
        """
        roots = self.roots if u is None else [u]
        for root in roots:
            for v in self.nodes(root):
                if self.is_leaf(v):
                    yield v

    def samples(self, u=None):
        """
        Returns an iterator over the numerical IDs of all the sample nodes in
        this tree that are underneath the node with ID ``u``. If ``u`` is a sample,
        it is included in the returned iterator. If u is not specified, return all
        sample node IDs reachable from the roots of the tree.

        .. note::

            The iterator is *not* guaranteed to return the sample node IDs in
            numerical or any other particular order.

        :param int u: The node of interest.
        :return: An iterator over all sample node IDs in the subtree rooted at u.
        :rtype: collections.abc.Iterable
        """
        if self._sample_lists and u is not None and u != self._virtual_root:
            yield from self._sample_generator(self._check_node(u))
            return
        roots = self.roots if u is None else [u]
        for root in roots:
            for v in self.nodes(root):
                if self._is_sample[v]:
                    yield v

    def _sample_generator(self, u):
        index = self._left_sample[u]
        if index == NULL:
            return
        stop = self._right_sample[u]
        while True:
            yield int(self._samples[index])
            if index == stop:
                break
            index = self._next_sample[index]

    def left_sample(self, u):
        """
        Returns the index in :meth:`TreeSequence.samples` of the first sample
        in the sample list of the specified node, or :data:`treeseq.NULL` if
        there are no samples below it. Only maintained when the tree was
        created with ``sample_lists=True``.

        :param int u: The node of interest.
        :rtype: int
        """
        return int(self._left_sample[self._check_node(u)])

    def right_sample(self, u):
        """
        Returns the index of the last sample in the sample list of the
        specified node. See :meth:`.left_sample`.

        :param int u: The node of interest.
        :rtype: int
        """
        return int(self._right_sample[self._check_node(u)])

    def next_sample(self, index):
        """
        Returns the sample index following ``index`` in the current sample
        lists. See :meth:`.left_sample`.

        :param int index: A sample index.
        :rtype: int
        """
        if not 0 <= index < len(self._samples):
            raise ValueError(f"Sample index {index} out of bounds")
        return int(self._next_sample[index])

    def num_children(self, u):
        """
        Returns the number of children of the specified
        node (i.e., ``len(tree.children(u))``)

        :param int u: The node of interest.
        :return: The number of immediate children of the node u in this tree.
        :rtype: int
        """
        return int(self._num_children[self._check_node(u)])

    def num_samples(self, u=None):
        """
        Returns the number of sample nodes in this tree underneath the specified
        node (including the node itself). If u is not specified return
        the total number of samples in the tree.

        This is a constant time operation.

        :param int u: The node of interest.
        :return: The number of samples in the subtree rooted at u.
        :rtype: int
        """
        u = self._virtual_root if u is None else u
        return int(self._num_samples[self._check_node(u)])

    def num_tracked_samples(self, u=None):
        """
        Returns the number of samples in the set specified in the
        ``tracked_samples`` parameter of the :meth:`TreeSequence.trees` method
        underneath the specified node. If the input node is not specified,
        return the total number of tracked samples in the tree.

        This is a constant time operation.

        :param int u: The node of interest.
        :return: The number of samples within the set of tracked samples in
            the subtree rooted at u.
        :rtype: int
        """
        u = self._virtual_root if u is None else u
        return int(self._num_tracked_samples[self._check_node(u)])

    #
    # Traversals
    #

    def _traversal_roots(self, u):
        if u == NULL:
            return self.roots
        return [self._check_node(u)]

    def preorder(self, u=NULL):
        """
        Returns a numpy array of node ids in preorder. If the node u
        is specified the traversal is rooted at this node (and it will be the first
        element in the returned array). Otherwise, all nodes reachable from the tree
        roots will be returned.

        :param int u: If specified, return all nodes in the subtree rooted at u
            (including u) in traversal order.
        :return: Array of node ids
        :rtype: numpy.ndarray (dtype=np.int32)
        """
        left_sib = self._left_sib
        right_child = self._right_child
        stack = self._traversal_roots(u)[::-1]
        out = []
        while len(stack) > 0:
            v = stack.pop()
            out.append(v)
            c = right_child[v]
            while c != NULL:
                stack.append(c)
                c = left_sib[c]
        return np.array(out, dtype=np.int32)

    def postorder(self, u=NULL):
        """
        Returns a numpy array of node ids in postorder. If the node u
        is specified the traversal is rooted at this node (and it will be the last
        element in the returned array). Otherwise, all nodes reachable from the tree
        roots will be returned.

        :param int u: If specified, return all nodes in the subtree rooted at u
            (including u) in traversal order.
        :return: Array of node ids
        :rtype: numpy.ndarray (dtype=np.int32)
        """
        right_sib = self._right_sib
        left_child = self._left_child
        stack = list(self._traversal_roots(u))
        out = []
        # Visit children right to left, then reverse
        while len(stack) > 0:
            v = stack.pop()
            out.append(v)
            c = left_child[v]
            while c != NULL:
                stack.append(c)
                c = right_sib[c]
        return np.array(out[::-1], dtype=np.int32)

    def timeasc(self, u=NULL):
        """
        Returns a numpy array of node ids. Starting at `u`, returns the reachable
        descendant nodes in order of increasing time (most recent first), falling back
        to increasing ID if times are equal.

        :param int u: If specified, return all nodes in the subtree rooted at u
            (including u) in traversal order.
        :return: Array of node ids
        :rtype: numpy.ndarray (dtype=np.int32)
        """
        nodes = self.preorder(u)
        time = self._nodes_time
        if u == self._virtual_root:
            time = np.append(time, [np.inf])
        order = np.lexsort([nodes, time[nodes]])
        return nodes[order]

    def timedesc(self, u=NULL):
        """
        Returns a numpy array of node ids. Starting at `u`, returns the reachable
        descendant nodes in order of decreasing time (least recent first), falling back
        to decreasing ID if times are equal.

        :param int u: If specified, return all nodes in the subtree rooted at u
            (including u) in traversal order.
        :return: Array of node ids
        :rtype: numpy.ndarray (dtype=np.int32)
        """
        return self.timeasc(u)[::-1]

    def _preorder_traversal(self, root):
        # Return Python integers for compatibility
        return map(int, self.preorder(root))

    def _postorder_traversal(self, root):
        return map(int, self.postorder(root))

    def _inorder_traversal(self, root):
        def traverse(u):
            children = self.children(u)
            mid = len(children) // 2
            for c in children[:mid]:
                yield from traverse(c)
            yield u
            for c in children[mid:]:
                yield from traverse(c)

        for u in self._traversal_roots(root):
            yield from traverse(u)

    def _levelorder_traversal(self, root):
        queue = collections.deque(self._traversal_roots(root))
        pop = queue.popleft
        extend = queue.extend
        children = self.children
        while queue:
            v = pop()
            extend(children(v))
            yield v

    def _timeasc_traversal(self, root):
        """
        Sorts by increasing time but falls back to increasing ID for equal times.
        """
        return map(int, self.timeasc(root))

    def _timedesc_traversal(self, root):
        """
        The reverse of timeasc.
        """
        return map(int, self.timedesc(root))

    def nodes(self, root=None, order="preorder"):
        """
        Returns an iterator over the node IDs reachable from the specified node in this
        tree in the specified traversal order.

        .. note::
            Unlike the :meth:`TreeSequence.nodes` method, this iterator produces
            integer node IDs, not :class:`Node` objects.

        If the ``root`` parameter is not provided or ``None``, iterate over all
        nodes reachable from the roots. If the ``root`` parameter is provided,
        only the nodes in the subtree rooted at this node (including the
        specified node) will be iterated over. If the :attr:`.virtual_root` is
        specified as the traversal root, it will be included in the traversed
        nodes.

        The available orders are:

        - 'preorder': starting at root, yield the current node, then recurse
          and do a preorder on each child of the current node.
        - 'inorder': starting at root, recurse on the first ``n // 2``
          children, yield the current node, then recurse on the remaining
          children.
        - 'postorder': starting at root, recurse and do a postorder on each
          child of the current node, then yield the current node.
        - 'levelorder' ('breadthfirst'): visit the nodes under root (including
          the root) in increasing order of their depth from root.
        - 'timeasc': visits the nodes in order of increasing time, falling back to
          increasing ID if times are equal.
        - 'timedesc': visits the nodes in order of decreasing time, falling back to
          decreasing ID if times are equal.

        :param int root: The root of the subtree we are traversing.
        :param str order: The traversal ordering.
        :return: An iterator over the node IDs in the tree in some traversal order.
        :rtype: collections.abc.Iterable, int
        """
        methods = {
            "preorder": self._preorder_traversal,
            "inorder": self._inorder_traversal,
            "postorder": self._postorder_traversal,
            "levelorder": self._levelorder_traversal,
            "breadthfirst": self._levelorder_traversal,
            "timeasc": self._timeasc_traversal,
            "timedesc": self._timedesc_traversal,
        }
        try:
            iterator = methods[order]
        except KeyError:
            raise ValueError(f"Traversal ordering '{order}' not supported")

        root = NULL if root is None else root
        return iterator(root)

    def parent_dict(self):
        """
        Returns a dictionary mapping each node with a parent in this tree
        to its parent.
        """
        return {
            int(u): int(self._parent[u])
            for u in np.flatnonzero(self._parent != NULL)
        }

    def __str__(self):
        """
        Return a plain text summary of a tree in a tree sequence
        """
        tree_rows = [
            ["Index", util.format_number(self.index)],
            [
                "Interval",
                f"{util.format_number(self.interval.left)}-"
                f"{util.format_number(self.interval.right)} "
                f"({util.format_number(self.span)})",
            ],
            ["Roots", util.format_number(self.num_roots)],
            ["Nodes", util.format_number(len(self.preorder()))],
            ["Sites", util.format_number(self.num_sites)],
            ["Mutations", util.format_number(self.num_mutations)],
            ["Total Branch Length", util.format_number(self.total_branch_length)],
        ]
        return util.unicode_table(tree_rows, title="Tree")


def load(file, *, skip_tables=False):
    """
    Return a :class:`TreeSequence` instance loaded from the specified file object or
    path. The file must be in the tree sequence file format produced by the
    :meth:`TreeSequence.dump` method.

    :param str file: The file object or path of the ``.trees`` file containing the
        tree sequence we wish to load.
    :param bool skip_tables: If True, no tables are read from the file and only
        the top-level information is populated in the tree sequence object.
    :return: The tree sequence object containing the information
        stored in the specified file path.
    :rtype: :class:`treeseq.TreeSequence`
    """
    return TreeSequence.load(file, skip_tables=skip_tables)


class TreeIterator:
    """
    Simple class providing forward and backward iteration over a tree sequence.
    """

    def __init__(self, tree):
        self.tree = tree
        self.more_trees = True
        self.forward = True

    def __iter__(self):
        return self

    def __reversed__(self):
        self.forward = False
        return self

    def __next__(self):
        if self.forward:
            self.more_trees = self.more_trees and self.tree.next()
        else:
            self.more_trees = self.more_trees and self.tree.prev()
        if not self.more_trees:
            raise StopIteration()
        return self.tree

    def __len__(self):
        return self.tree.tree_sequence.num_trees


class SimpleContainerSequence:
    """
    Simple wrapper to allow arrays of SimpleContainers (e.g. edges, nodes) that have a
    function allowing access by index (e.g. ts.edge(i), ts.node(i)) to be treated as a
    python sequence, allowing forward and reverse iteration.

    To generate a sequence of items in a different order, the ``order`` parameter allows
    an array of indexes to be passed in, such as returned from np.argsort or np.lexsort.
    """

    def __init__(self, getter, length, order=None):
        if order is None:
            self.getter = getter
        else:
            self.getter = lambda index: getter(order[index])
        self.length = length

    def __len__(self):
        return self.length

    def __getitem__(self, index):
        return self.getter(index)


class TreeSequence:
    """
    A single tree sequence. A TreeSequence instance can be created from a set of
    :ref:`tables <sec_table_definitions>` using :meth:`TableCollection.tree_sequence`
    or by passing a :class:`TableCollection` to this constructor, or loaded from a
    native binary file using :func:`treeseq.load`.

    Building a tree sequence copies the tables, checks that they satisfy every
    structural requirement (see :meth:`TableCollection.check_integrity`), builds
    the edge insertion and removal indexes and freezes the copy. The source
    collection is never modified.

    TreeSequences are immutable. To change the data held in a particular
    tree sequence, first get the table information as a :class:`TableCollection`
    instance (using :meth:`.dump_tables`), edit those tables, and create a new
    tree sequence using :meth:`TableCollection.tree_sequence`.

    :param TableCollection table_collection: The tables defining this tree sequence.
    """

    def __init__(self, table_collection):
        if not isinstance(table_collection, tables.TableCollection):
            raise TypeError(
                "A TreeSequence must be built from a TableCollection, not "
                f"{type(table_collection).__name__}"
            )
        tables_dict = table_collection.asdict()
        # Indexes are always rebuilt for the sealed copy
        tables_dict["indexes"] = {}
        sealed = tables.TableCollection.fromdict(
            tables_dict, strict_references=table_collection.strict_references
        )
        sealed.sequence_length = sealed.check_integrity()
        sealed.build_index()
        sealed._file_uuid = table_collection.file_uuid
        sealed._freeze()
        self._tables = sealed
        self._build_derived()
        logger.debug(
            "Built tree sequence with %d trees over %d edges",
            self.num_trees,
            self.num_edges,
        )

    def _build_derived(self):
        sealed = self._tables
        self._table_metadata_schemas = TableMetadataSchemas(
            **{
                name: getattr(sealed, name + "s").metadata_schema
                for name in [
                    "node",
                    "edge",
                    "site",
                    "mutation",
                    "migration",
                    "individual",
                    "population",
                ]
            }
        )
        self._columns = {}
        for table_name, table in sealed.table_name_map.items():
            for column in table.fixed_columns:
                self._columns[f"{table_name}_{column}"] = _read_only(
                    table._view(column)
                )
        indexes = sealed.indexes
        self._columns["indexes_edge_insertion_order"] = _read_only(
            indexes.edge_insertion_order
        )
        self._columns["indexes_edge_removal_order"] = _read_only(
            indexes.edge_removal_order
        )

        flags = self.nodes_flags
        self._samples = _read_only(
            np.flatnonzero(flags & NODE_IS_SAMPLE).astype(np.int32)
        )
        self._breakpoints = _read_only(
            np.unique(
                np.concatenate(
                    [[0.0, self.sequence_length], self.edges_left, self.edges_right]
                )
            )
        )

        position = self.sites_position
        self._site_order = np.argsort(position, kind="stable").astype(np.int32)
        self._sorted_positions = position[self._site_order]

        # Mutation ids grouped by site; ids increase within a site so that
        # parents come before their children.
        mutations_site = self.mutations_site
        self._site_mutations = np.argsort(mutations_site, kind="stable").astype(
            np.int32
        )
        self._site_num_mutations = np.bincount(
            mutations_site, minlength=self.num_sites
        ).astype(np.int32)
        self._site_mutations_offset = np.zeros(self.num_sites + 1, dtype=np.int64)
        np.cumsum(self._site_num_mutations, out=self._site_mutations_offset[1:])

        individual = self.nodes_individual
        has_individual = np.flatnonzero(individual != NULL)
        self._individual_nodes = _read_only(
            has_individual[
                np.argsort(individual[has_individual], kind="stable")
            ].astype(np.int32)
        )
        counts = np.bincount(
            individual[has_individual], minlength=self.num_individuals
        )
        self._individual_nodes_offset = np.zeros(
            self.num_individuals + 1, dtype=np.int64
        )
        np.cumsum(counts, out=self._individual_nodes_offset[1:])

    def _site_ids_in_interval(self, left, right):
        start, stop = np.searchsorted(self._sorted_positions, [left, right])
        return self._site_order[start:stop]

    # Implement the pickle protocol for TreeSequence
    def __getstate__(self):
        return self.dump_tables()

    def __setstate__(self, tc):
        self.__init__(tc)

    def __eq__(self, other):
        return isinstance(other, TreeSequence) and self.tables == other.tables

    def equals(
        self,
        other,
        *,
        ignore_metadata=False,
        ignore_ts_metadata=False,
        ignore_provenance=False,
        ignore_timestamps=False,
        ignore_tables=False,
    ):
        """
        Returns True if  `self` and `other` are equal. Uses the underlying table
        equality, see :meth:`TableCollection.equals` for details and options.
        """
        return self.tables.equals(
            other.tables,
            ignore_metadata=ignore_metadata,
            ignore_ts_metadata=ignore_ts_metadata,
            ignore_provenance=ignore_provenance,
            ignore_timestamps=ignore_timestamps,
            ignore_tables=ignore_tables,
        )

    def aslist(self, **kwargs):
        """
        Returns the trees in this tree sequence as a list. Each tree is
        represented by a different instance of :class:`Tree`. As such, this
        method is inefficient and may use a large amount of memory, and should
        not be used when performance is a consideration. The :meth:`.trees`
        method is the recommended way to efficiently iterate over the trees
        in a tree sequence.

        :param \\**kwargs: Further arguments used as parameters when constructing the
            returned trees.
        :return: A list of the trees in this tree sequence.
        :rtype: list
        """
        return [tree.copy() for tree in self.trees(**kwargs)]

    @classmethod
    def load(cls, file_or_path, *, skip_tables=False):
        tc = tables.TableCollection.load(file_or_path, skip_tables=skip_tables)
        return cls(tc)

    def dump(self, file_or_path):
        """
        Writes the tree sequence to the specified path or file object.

        :param str file_or_path: The file object or path to write the TreeSequence to.
        """
        self._tables.dump(file_or_path)

    @property
    def tables_dict(self):
        """
        Returns a dictionary mapping names to tables in the
        underlying :class:`.TableCollection`. Equivalent to calling
        ``ts.tables.table_name_map``.
        """
        return self.tables.table_name_map

    @property
    def tables(self):
        """
        Returns an immutable view of the tables underlying this tree sequence.
        Any attempt to modify the returned tables raises
        :class:`.ImmutableTableError`. Use :meth:`.dump_tables` for a
        modifiable copy.

        :return: An immutable view of the TableCollection underlying this tree sequence.
        """
        return self._tables

    @property
    def nbytes(self):
        """
        Returns the total number of bytes required to store the data
        in this tree sequence. Note that this may not be equal to
        the actual memory footprint.
        """
        return self._tables.nbytes

    def dump_tables(self):
        """
        Returns a modifiable copy of the :class:`tables<TableCollection>` defining
        this tree sequence.

        :return: A :class:`TableCollection` containing all tables underlying
            the tree sequence.
        :rtype: TableCollection
        """
        return self._tables.copy()

    def __str__(self):
        """
        Return a plain text summary of the contents of a tree sequence
        """
        ts_rows = [
            ["Trees", util.format_number(self.num_trees)],
            ["Sequence Length", util.format_number(self.sequence_length)],
            ["Time Units", self.time_units],
            ["Sample Nodes", util.format_number(self.num_samples)],
            ["Total Size", util.naturalsize(self.nbytes)],
        ]
        header = ["Table", "Rows", "Size", "Has Metadata"]
        table_rows = []
        for name, table in self.tables.table_name_map.items():
            has_metadata = "metadata" in table.ragged_columns and (
                len(table._view("metadata")) > 0
            )
            table_rows.append(
                [
                    name.capitalize(),
                    util.format_number(table.num_rows),
                    util.naturalsize(table.nbytes),
                    "Yes" if has_metadata else "No",
                ]
            )
        return util.unicode_table(ts_rows, title="TreeSequence") + util.unicode_table(
            table_rows, header=header
        )

    @property
    def num_samples(self):
        """
        Returns the number of sample nodes in this tree sequence. This is also the
        number of sample nodes in each tree.

        :return: The number of sample nodes in this tree sequence.
        :rtype: int
        """
        return len(self._samples)

    @property
    def table_metadata_schemas(self) -> TableMetadataSchemas:
        """
        The set of metadata schemas for the tables in this tree sequence.
        """
        return self._table_metadata_schemas

    @property
    def file_uuid(self):
        """
        The UUID of the file this tree sequence was loaded from, or None.
        """
        return self._tables.file_uuid

    @property
    def sequence_length(self):
        """
        Returns the sequence length in this tree sequence. This defines the
        genomic scale over which tree coordinates are defined. Given a
        tree sequence with a sequence length :math:`L`, the constituent
        trees will be defined over the half-closed interval
        :math:`[0, L)`.

        :return: The length of the sequence in this tree sequence in bases.
        :rtype: float
        """
        return self._tables.sequence_length

    @property
    def metadata(self) -> Any:
        """
        The decoded metadata for this TreeSequence.
        """
        return self._tables.metadata

    @property
    def metadata_bytes(self) -> bytes:
        return self._tables.metadata_bytes

    @property
    def metadata_schema(self) -> metadata_module.MetadataSchema:
        """
        The :class:`treeseq.MetadataSchema` for this TreeSequence.
        """
        return self._tables.metadata_schema

    @property
    def time_units(self) -> str:
        """
        String describing the units of the time dimension for this TreeSequence.
        """
        return self._tables.time_units

    @property
    def num_edges(self):
        """
        Returns the number of :ref:`edges <sec_edge_table_definition>` in this
        tree sequence.

        :return: The number of edges in this tree sequence.
        :rtype: int
        """
        return self._tables.edges.num_rows

    @property
    def num_trees(self):
        """
        Returns the number of distinct trees in this tree sequence. This
        is equal to the number of trees returned by the :meth:`.trees`
        method.

        :return: The number of trees in this tree sequence.
        :rtype: int
        """
        return len(self._breakpoints) - 1

    @property
    def num_sites(self):
        """
        Returns the number of :ref:`sites <sec_site_table_definition>` in
        this tree sequence.

        :return: The number of sites in this tree sequence.
        :rtype: int
        """
        return self._tables.sites.num_rows

    @property
    def num_mutations(self):
        """
        Returns the number of :ref:`mutations <sec_mutation_table_definition>`
        in this tree sequence.

        :return: The number of mutations in this tree sequence.
        :rtype: int
        """
        return self._tables.mutations.num_rows

    @property
    def num_individuals(self):
        """
        Returns the number of :ref:`individuals <sec_individual_table_definition>` in
        this tree sequence.

        :return: The number of individuals in this tree sequence.
        :rtype: int
        """
        return self._tables.individuals.num_rows

    @property
    def num_nodes(self):
        """
        Returns the number of :ref:`nodes <sec_node_table_definition>` in
        this tree sequence.

        :return: The number of nodes in this tree sequence.
        :rtype: int
        """
        return self._tables.nodes.num_rows

    @property
    def num_provenances(self):
        """
        Returns the number of :ref:`provenances <sec_provenance_table_definition>`
        in this tree sequence.

        :return: The number of provenances in this tree sequence.
        :rtype: int
        """
        return self._tables.provenances.num_rows

    @property
    def num_populations(self):
        """
        Returns the number of :ref:`populations <sec_population_table_definition>`
        in this tree sequence.

        :return: The number of populations in this tree sequence.
        :rtype: int
        """
        return self._tables.populations.num_rows

    @property
    def num_migrations(self):
        """
        Returns the number of :ref:`migrations <sec_migration_table_definition>`
        in this tree sequence.

        :return: The number of migrations in this tree sequence.
        :rtype: int
        """
        return self._tables.migrations.num_rows

    def max_root_time(self):
        """
        Returns the time of the oldest root in any of the trees in this tree sequence.

        :return: The maximum time of a root in this tree sequence.
        :rtype: float
        :raises ValueError: If there are no samples in the tree, and hence no roots (as
            roots are defined by the ends of the upward paths from the set of samples).
        """
        if self.num_samples == 0:
            raise ValueError(
                "max_root_time is not defined in a tree sequence with 0 samples"
            )
        ret = float(np.max(self.nodes_time[self._samples]))
        if self.num_edges > 0:
            ret = max(ret, float(np.max(self.nodes_time[self.edges_parent])))
        return ret

    def migrations(self):
        """
        Returns an iterable sequence of all the
        :ref:`migrations <sec_migration_table_definition>` in this tree sequence.

        :return: An iterable sequence of all migrations.
        :rtype: Sequence(:class:`.Migration`)
        """
        return SimpleContainerSequence(self.migration, self.num_migrations)

    def individuals(self):
        """
        Returns an iterable sequence of all the
        :ref:`individuals <sec_individual_table_definition>` in this tree sequence.

        :return: An iterable sequence of all individuals.
        :rtype: Sequence(:class:`.Individual`)
        """
        return SimpleContainerSequence(self.individual, self.num_individuals)

    def nodes(self, *, order=None):
        """
        Returns an iterable sequence of all the :ref:`nodes <sec_node_table_definition>`
        in this tree sequence.

        :param str order: The order in which the nodes should be returned: must be
            one of "id" (default) or "timeasc" (ascending order of time, then by
            ascending node id).
        :return: An iterable sequence of all nodes.
        :rtype: Sequence(:class:`.Node`)
        """
        order = "id" if order is None else order
        if order not in ["id", "timeasc"]:
            raise ValueError('order must be "id" or "timeasc"')
        odr = None
        if order == "timeasc":
            odr = np.lexsort((np.arange(self.num_nodes), self.nodes_time))
        return SimpleContainerSequence(self.node, self.num_nodes, order=odr)

    def edges(self):
        """
        Returns an iterable sequence of all the :ref:`edges <sec_edge_table_definition>`
        in this tree sequence, in the order they are stored in the edge table.

        :return: An iterable sequence of all edges.
        :rtype: Sequence(:class:`.Edge`)
        """
        return SimpleContainerSequence(self.edge, self.num_edges)

    def _edge_diffs_forward(self, include_terminal=False):
        edge = self.edge
        edge_left = self.edges_left
        edge_right = self.edges_right
        sequence_length = self.sequence_length
        in_order = self.indexes_edge_insertion_order
        out_order = self.indexes_edge_removal_order
        M = self.num_edges
        j = 0
        k = 0
        left = 0.0
        while j < M or left < sequence_length:
            edges_out = []
            edges_in = []
            while k < M and edge_right[out_order[k]] == left:
                edges_out.append(edge(out_order[k]))
                k += 1
            while j < M and edge_left[in_order[j]] == left:
                edges_in.append(edge(in_order[j]))
                j += 1
            right = sequence_length
            if j < M:
                right = min(right, edge_left[in_order[j]])
            if k < M:
                right = min(right, edge_right[out_order[k]])
            yield EdgeDiff(Interval(left, float(right)), edges_out, edges_in)
            left = float(right)

        if include_terminal:
            edges_out = []
            while k < M:
                edges_out.append(edge(out_order[k]))
                k += 1
            yield EdgeDiff(Interval(left, left), edges_out, [])

    def _edge_diffs_reverse(self, include_terminal=False):
        edge = self.edge
        edge_left = self.edges_left
        edge_right = self.edges_right
        sequence_length = self.sequence_length
        in_order = self.indexes_edge_removal_order
        out_order = self.indexes_edge_insertion_order
        M = self.num_edges
        j = M - 1
        k = M - 1
        right = sequence_length
        while j >= 0 or right > 0:
            edges_out = []
            edges_in = []
            while k >= 0 and edge_left[out_order[k]] == right:
                edges_out.append(edge(out_order[k]))
                k -= 1
            while j >= 0 and edge_right[in_order[j]] == right:
                edges_in.append(edge(in_order[j]))
                j -= 1
            left = 0
            if j >= 0:
                left = max(left, edge_right[in_order[j]])
            if k >= 0:
                left = max(left, edge_left[out_order[k]])
            yield EdgeDiff(Interval(float(left), right), edges_out, edges_in)
            right = float(left)

        if include_terminal:
            edges_out = []
            while k >= 0:
                edges_out.append(edge(out_order[k]))
                k -= 1
            yield EdgeDiff(Interval(right, right), edges_out, [])

    def edge_diffs(self, include_terminal=False, *, direction=treeseq.FORWARD):
        """
        Returns an iterator over all the :ref:`edges <sec_edge_table_definition>` that
        are inserted and removed to build the trees as we move from left-to-right along
        the tree sequence. Each iteration yields a named tuple consisting of 3 values,
        ``(interval, edges_out, edges_in)``. The first value, ``interval``, is the
        genomic interval ``(left, right)`` covered by the incoming tree
        (see :attr:`Tree.interval`). The second, ``edges_out`` is a list of the edges
        that were just-removed to create the tree covering the interval
        (hence ``edges_out`` will always be empty for the first tree). The last value,
        ``edges_in``, is a list of edges that were just
        inserted to construct the tree covering the current interval.

        Going forwards, the edges within each ``edges_in`` list are ordered by
        descending time of the parent node, then ascending parent id, then
        ascending child id; ``edges_out`` lists are ordered by ascending parent
        time. Going in reverse the same edges are visited from the other end.

        :param bool include_terminal: If False (default), the iterator terminates
            after the final interval in the tree sequence (i.e., it does not
            report a final removal of all remaining edges), and the number
            of iterations will be equal to the number of trees in the tree
            sequence. If True, an additional iteration takes place, with the last
            ``edges_out`` value reporting all the edges contained in the final
            tree (with both ``left`` and ``right`` equal to the end of the
            sequence in the direction of travel).
        :param int direction: The direction of travel along the sequence for
            diffs. Must be one of :data:`.FORWARD` or :data:`.REVERSE`.
            (Default: :data:`.FORWARD`).
        :return: An iterator over the (interval, edges_out, edges_in) tuples.
        :rtype: :class:`collections.abc.Iterable`
        """
        if direction == treeseq.FORWARD:
            return self._edge_diffs_forward(include_terminal=include_terminal)
        elif direction == treeseq.REVERSE:
            return self._edge_diffs_reverse(include_terminal=include_terminal)
        else:
            raise ValueError(
                "direction must be either treeseq.FORWARD or treeseq.REVERSE"
            )

    def sites(self):
        """
        Returns an iterable sequence of all the :ref:`sites <sec_site_table_definition>`
        in this tree sequence, in order of increasing ID.

        :return: An iterable sequence of all sites.
        :rtype: Sequence(:class:`.Site`)
        """
        return SimpleContainerSequence(self.site, self.num_sites)

    def mutations(self):
        """
        Returns an iterator over all the
        :ref:`mutations <sec_mutation_table_definition>` in this tree sequence.
        The returned iterator is equivalent to iterating over all sites
        and all mutations in each site, i.e.::

            for site in tree_sequence.sites():
                for mutation in site.mutations:
                    yield mutation

        :return: An iterator over all mutations in this tree sequence.
        :rtype: iter(:class:`Mutation`)
        """
        for site in self.sites():
            yield from site.mutations

    def populations(self):
        """
        Returns an iterable sequence of all the
        :ref:`populations <sec_population_table_definition>` in this tree sequence.

        :return: An iterable sequence of all populations.
        :rtype: Sequence(:class:`.Population`)
        """
        return SimpleContainerSequence(self.population, self.num_populations)

    def provenances(self):
        """
        Returns an iterable sequence of all the
        :ref:`provenances <sec_provenance_table_definition>` in this tree sequence.

        :return: An iterable sequence of all provenances.
        :rtype: Sequence(:class:`.Provenance`)
        """
        return SimpleContainerSequence(self.provenance, self.num_provenances)

    def breakpoints(self, as_array=False):
        """
        Returns the breakpoints that separate trees along the chromosome, including the
        two extreme points 0 and L. This is equivalent to::

            iter([0] + [t.interval.right for t in self.trees()])

        By default we return an iterator over the breakpoints as Python float objects;
        if ``as_array`` is True we return them as a read-only numpy array.

        :param bool as_array: If True, return the breakpoints as a numpy array.
        :return: The breakpoints defined by the tree intervals along the sequence.
        :rtype: collections.abc.Iterable or numpy.ndarray
        """
        breakpoints = self._breakpoints
        if not as_array:
            breakpoints = map(float, breakpoints)
        return breakpoints

    def at(self, position, **kwargs):
        """
        Returns the tree covering the specified genomic location. The returned tree
        will have ``tree.interval.left`` <= ``position`` < ``tree.interval.right``.
        See also :meth:`Tree.seek`.

        :param float position: A genomic location.
        :param \\**kwargs: Further arguments used as parameters when constructing the
            returned :class:`Tree`.
        :return: A new instance of :class:`Tree` positioned to cover the specified
            genomic location.
        :rtype: Tree
        """
        tree = Tree(self, **kwargs)
        tree.seek(position)
        return tree

    def at_index(self, index, **kwargs):
        """
        Returns the tree at the specified index. See also :meth:`Tree.seek_index`.

        :param int index: The index of the required tree.
        :param \\**kwargs: Further arguments used as parameters when constructing the
            returned :class:`Tree`.
        :return: A new instance of :class:`Tree` positioned at the specified index.
        :rtype: Tree
        """
        tree = Tree(self, **kwargs)
        tree.seek_index(index)
        return tree

    def first(self, **kwargs):
        """
        Returns the first tree in this :class:`TreeSequence`. To iterate over all
        trees in the sequence, use the :meth:`.trees` method.

        :param \\**kwargs: Further arguments used as parameters when constructing the
            returned :class:`Tree`.
        :return: The first tree in this tree sequence.
        :rtype: :class:`Tree`.
        """
        tree = Tree(self, **kwargs)
        tree.first()
        return tree

    def last(self, **kwargs):
        """
        Returns the last tree in this :class:`TreeSequence`. To iterate over all
        trees in the sequence, use the :meth:`.trees` method.

        :param \\**kwargs: Further arguments used as parameters when constructing the
            returned :class:`Tree`.
        :return: The last tree in this tree sequence.
        :rtype: :class:`Tree`.
        """
        tree = Tree(self, **kwargs)
        tree.last()
        return tree

    def trees(self, tracked_samples=None, *, sample_lists=False, root_threshold=1):
        """
        Returns an iterator over the trees in this tree sequence. Each value
        returned in this iterator is an instance of :class:`Tree`. Upon
        successful termination of the iterator, the tree will be in the
        "cleared" null state. Use ``reversed(ts.trees())`` to iterate
        from right to left.

        .. warning:: Do not store the results of this iterator in a list!
           For performance reasons, the same underlying object is used
           for every tree returned which will most likely lead to unexpected
           behaviour. If you wish to obtain a list of trees in a tree sequence
           please use ``ts.aslist()`` instead.

        :param list tracked_samples: The list of samples to be tracked and
            counted using the :meth:`Tree.num_tracked_samples` method.
        :param bool sample_lists: If True, maintain the sample lists used by
            :meth:`Tree.samples`.
        :param int root_threshold: The minimum number of samples that a node
            must be ancestral to for it to be in the list of roots.
        :return: An iterator over the Trees in this tree sequence.
        :rtype: collections.abc.Iterable, :class:`Tree`
        """
        tree = Tree(
            self,
            tracked_samples=tracked_samples,
            sample_lists=sample_lists,
            root_threshold=root_threshold,
        )
        return TreeIterator(tree)

    def samples(self, population=None, *, time=None):
        """
        Returns an array of the sample node IDs in this tree sequence. If
        `population` is specified, only return sample IDs from that population.
        It is also possible to restrict samples by time using the parameter
        `time`. If `time` is a numeric value, only return sample IDs whose node
        time is approximately equal to the specified time. If `time` is a pair
        of values of the form `(min_time, max_time)`, only return sample IDs
        whose node time `t` is in this interval such that `min_time <= t < max_time`.

        :param int population: The population of interest. If None, do not
            filter samples by population.
        :param float,tuple time: The time or time interval of interest. If
            None, do not filter samples by time.
        :return: A numpy array of the node IDs for the samples of interest,
            listed in numerical order.
        :rtype: numpy.ndarray (dtype=np.int32)
        """
        samples = self._samples
        keep = np.full(shape=samples.shape, fill_value=True)
        if population is not None:
            sample_population = self.nodes_population[samples]
            keep = np.logical_and(keep, sample_population == population)
        if time is not None:
            # ndmin is set so that scalars are converted into 1d arrays
            time = np.array(time, ndmin=1, dtype=float)
            sample_times = self.nodes_time[samples]
            if time.shape == (1,):
                keep = np.logical_and(keep, np.isclose(sample_times, time))
            elif time.shape == (2,):
                if time[1] <= time[0]:
                    raise ValueError("time_interval max is less than or equal to min.")
                keep = np.logical_and(keep, sample_times >= time[0])
                keep = np.logical_and(keep, sample_times < time[1])
            else:
                raise ValueError(
                    "time must be either a single value or a pair of values "
                    "(min_time, max_time)."
                )
        return samples[keep]

    #
    # Column arrays
    #

    @property
    def individuals_flags(self):
        """
        Efficient access to the bitwise ``flags`` column in the
        :ref:`sec_individual_table_definition` as a read-only numpy array
        (dtype=np.uint32).
        """
        return self._columns["individuals_flags"]

    @property
    def nodes_time(self):
        """
        Efficient access to the ``time`` column in the
        :ref:`sec_node_table_definition` as a read-only numpy array (dtype=np.float64).
        """
        return self._columns["nodes_time"]

    @property
    def nodes_flags(self):
        """
        Efficient access to the bitwise ``flags`` column in the
        :ref:`sec_node_table_definition` as a read-only numpy array (dtype=np.uint32).
        """
        return self._columns["nodes_flags"]

    @property
    def nodes_population(self):
        return self._columns["nodes_population"]

    @property
    def nodes_individual(self):
        return self._columns["nodes_individual"]

    @property
    def edges_left(self):
        """
        Efficient access to the ``left`` column in the
        :ref:`sec_edge_table_definition` as a read-only numpy array (dtype=np.float64).
        """
        return self._columns["edges_left"]

    @property
    def edges_right(self):
        return self._columns["edges_right"]

    @property
    def edges_parent(self):
        return self._columns["edges_parent"]

    @property
    def edges_child(self):
        return self._columns["edges_child"]

    @property
    def sites_position(self):
        """
        Efficient access to the ``position`` column in the
        :ref:`sec_site_table_definition` as a read-only numpy array (dtype=np.float64).
        """
        return self._columns["sites_position"]

    @property
    def mutations_site(self):
        return self._columns["mutations_site"]

    @property
    def mutations_node(self):
        return self._columns["mutations_node"]

    @property
    def mutations_parent(self):
        return self._columns["mutations_parent"]

    @property
    def mutations_time(self):
        """
        Efficient access to the ``time`` column in the
        :ref:`sec_mutation_table_definition` as a read-only numpy array
        (dtype=np.float64). Unknown times are :data:`UNKNOWN_TIME`.
        """
        return self._columns["mutations_time"]

    @property
    def migrations_left(self):
        return self._columns["migrations_left"]

    @property
    def migrations_right(self):
        return self._columns["migrations_right"]

    @property
    def migrations_node(self):
        return self._columns["migrations_node"]

    @property
    def migrations_source(self):
        return self._columns["migrations_source"]

    @property
    def migrations_dest(self):
        return self._columns["migrations_dest"]

    @property
    def migrations_time(self):
        return self._columns["migrations_time"]

    @property
    def indexes_edge_insertion_order(self):
        """
        Return the order in which edges are inserted when moving left to
        right: by left coordinate, then parent time (oldest first), then
        parent id and child id. Read-only numpy array (dtype=np.int32).
        """
        return self._columns["indexes_edge_insertion_order"]

    @property
    def indexes_edge_removal_order(self):
        """
        Return the order in which edges are removed when moving left to
        right: by right coordinate, then parent time (youngest first), then
        parent id and child id. Read-only numpy array (dtype=np.int32).
        """
        return self._columns["indexes_edge_removal_order"]

    #
    # Entity accessors
    #

    @staticmethod
    def check_index(index, length):
        if not isinstance(index, numbers.Integral):
            raise TypeError(
                f"Index must be of integer type, not '{type(index).__name__}'"
            )
        if index < 0:
            index += length
        if index < 0 or index >= length:
            raise IndexError("Index out of bounds")
        return int(index)

    def individual(self, id_):
        """
        Returns the :ref:`individual <sec_individual_table_definition>`
        in this tree sequence with the specified ID.  As with python lists, negative
        IDs can be used to index backwards from the last individual.

        :rtype: :class:`Individual`
        """
        id_ = self.check_index(id_, self.num_individuals)
        flags, location, parents, metadata = self._tables.individuals._row_values(id_)
        offset = self._individual_nodes_offset
        return Individual(
            id=id_,
            flags=flags,
            location=location,
            parents=parents,
            nodes=self._individual_nodes[offset[id_] : offset[id_ + 1]],
            metadata=metadata,
            metadata_decoder=self.table_metadata_schemas.individual.decode_row,
        )

    def node(self, id_):
        """
        Returns the :ref:`node <sec_node_table_definition>` in this tree sequence
        with the specified ID. As with python lists, negative IDs can be used to
        index backwards from the last node.

        :rtype: :class:`Node`
        """
        id_ = self.check_index(id_, self.num_nodes)
        (
            flags,
            time,
            population,
            individual,
            metadata,
        ) = self._tables.nodes._row_values(id_)
        return Node(
            id=id_,
            flags=flags,
            time=time,
            population=population,
            individual=individual,
            metadata=metadata,
            metadata_decoder=self.table_metadata_schemas.node.decode_row,
        )

    def edge(self, id_):
        """
        Returns the :ref:`edge <sec_edge_table_definition>` in this tree sequence
        with the specified ID. As with python lists, negative IDs can be used to
        index backwards from the last edge.

        :rtype: :class:`Edge`
        """
        id_ = self.check_index(id_, self.num_edges)
        left, right, parent, child, metadata = self._tables.edges._row_values(id_)
        return Edge(
            id=id_,
            left=left,
            right=right,
            parent=parent,
            child=child,
            metadata=metadata,
            metadata_decoder=self.table_metadata_schemas.edge.decode_row,
        )

    def migration(self, id_):
        """
        Returns the :ref:`migration <sec_migration_table_definition>` in this tree
        sequence with the specified ID. As with python lists, negative IDs can be
        used to index backwards from the last migration.

        :rtype: :class:`.Migration`
        """
        id_ = self.check_index(id_, self.num_migrations)
        (
            left,
            right,
            node,
            source,
            dest,
            time,
            metadata,
        ) = self._tables.migrations._row_values(id_)
        return Migration(
            id=id_,
            left=left,
            right=right,
            node=node,
            source=source,
            dest=dest,
            time=time,
            metadata=metadata,
            metadata_decoder=self.table_metadata_schemas.migration.decode_row,
        )

    def mutation(self, id_):
        """
        Returns the :ref:`mutation <sec_mutation_table_definition>` in this tree sequence
        with the specified ID. As with python lists, negative IDs can be used to
        index backwards from the last mutation.

        :rtype: :class:`Mutation`
        """
        id_ = self.check_index(id_, self.num_mutations)
        mutations = self._tables.mutations
        (
            site,
            node,
            derived_state,
            parent,
            metadata,
            time,
        ) = mutations._row_values(id_)
        if parent == NULL:
            inherited_state = self._tables.sites._row_values(site)[1]
        else:
            inherited_state = mutations._row_values(parent)[2]
        return Mutation(
            id=id_,
            site=site,
            node=node,
            derived_state=derived_state,
            parent=parent,
            metadata=metadata,
            time=time,
            inherited_state=inherited_state,
            metadata_decoder=self.table_metadata_schemas.mutation.decode_row,
        )

    def site(self, id_=None, *, position=None):
        """
        Returns the :ref:`site <sec_site_table_definition>` in this tree sequence
        with either the specified ID or position. As with python lists, negative IDs
        can be used to index backwards from the last site.

        When position is specified instead of site ID, a binary search is done
        on the sorted site positions to find a site with exactly that position.

        :rtype: :class:`Site`
        """
        if id_ is None and position is None:
            raise TypeError("Site id or position must be provided.")
        elif id_ is not None and position is not None:
            raise TypeError("Only one of site id or position needs to be provided.")
        elif id_ is None:
            position = np.array(position)
            if len(position.shape) > 0:
                raise ValueError("Position must be provided as a scalar value.")
            if position < 0 or position >= self.sequence_length:
                raise ValueError(
                    "Position is beyond the coordinates defined by sequence length."
                )
            site_pos = self._sorted_positions
            j = site_pos.searchsorted(position)
            if j >= len(site_pos) or site_pos[j] != position:
                raise ValueError(f"There is no site at position {position}.")
            id_ = int(self._site_order[j])
        else:
            id_ = self.check_index(id_, self.num_sites)
        pos, ancestral_state, metadata = self._tables.sites._row_values(id_)
        offset = self._site_mutations_offset
        mutations = [
            self.mutation(mut_id)
            for mut_id in self._site_mutations[offset[id_] : offset[id_ + 1]]
        ]
        return Site(
            id=id_,
            position=pos,
            ancestral_state=ancestral_state,
            mutations=mutations,
            metadata=metadata,
            metadata_decoder=self.table_metadata_schemas.site.decode_row,
        )

    def population(self, id_):
        """
        Returns the :ref:`population <sec_population_table_definition>`
        in this tree sequence with the specified ID.  As with python lists, negative
        IDs can be used to index backwards from the last population.

        :rtype: :class:`Population`
        """
        id_ = self.check_index(id_, self.num_populations)
        (metadata,) = self._tables.populations._row_values(id_)
        return Population(
            id=id_,
            metadata=metadata,
            metadata_decoder=self.table_metadata_schemas.population.decode_row,
        )

    def provenance(self, id_):
        """
        Returns the :ref:`provenance <sec_provenance_table_definition>`
        in this tree sequence with the specified ID.  As with python lists, negative
        IDs can be used to index backwards from the last provenance.
        """
        id_ = self.check_index(id_, self.num_provenances)
        timestamp, record = self._tables.provenances._row_values(id_)
        return Provenance(id=id_, timestamp=timestamp, record=record)
