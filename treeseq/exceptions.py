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
Exceptions defined in treeseq.
"""


class TreeSeqException(Exception):
    """
    Superclass of all exceptions defined in treeseq.
    """


class LibraryError(TreeSeqException):
    """
    Generic error raised when tables break one of the structural
    requirements of a tree sequence. Where they are known, the name of the
    offending ``table``, the ``row`` id and the offending ``value`` are
    available as attributes and are included in the message.
    """

    def __init__(self, message, *, table=None, row=None, value=None):
        self.table = table
        self.row = row
        self.value = value
        context = [
            f"{name}={val}"
            for name, val in (("table", table), ("row", row), ("value", value))
            if val is not None
        ]
        if len(context) > 0:
            message = f"{message} [{', '.join(context)}]"
        super().__init__(message)


class InvalidIntervalError(LibraryError):
    """
    A genomic interval has ``left >= right``, a non-finite coordinate or
    lies outside the sequence bounds.
    """


class OutOfBoundsError(LibraryError):
    """
    A row refers to an ID that is not present in the referenced table, or
    a coordinate lies outside the sequence.
    """


#: Alias emphasising the referential nature of the error.
DanglingReferenceError = OutOfBoundsError


class TimeOrderError(LibraryError):
    """
    A parent is not strictly older than its child, or a mutation does not
    respect the ordering of its ancestors at a site.
    """


class CyclicMutationParentError(LibraryError):
    """
    Following the parent of a mutation revisits the mutation itself.
    """


class NonFiniteValueError(LibraryError):
    """
    A time or coordinate value is infinite or NaN.
    """


class OverlappingEdgesError(LibraryError):
    """
    Two edges give the same child a parent over overlapping intervals.
    """


class DuplicatePositionsError(LibraryError):
    """
    Duplicate positions in the list of sites.
    """


class FileFormatError(TreeSeqException):
    """
    Some file format error was detected.
    """


class VersionTooOldError(FileFormatError):
    """
    The version of the file is too old and cannot be read.
    """

    def __init__(self, message=None):
        if message is None:
            message = "File format version is too old and cannot be read."
        super().__init__(message)


class VersionTooNewError(FileFormatError):
    """
    The version of the file is too new and cannot be read by this version
    of treeseq.
    """

    def __init__(self, message=None):
        if message is None:
            message = (
                "File format version is too new. Please upgrade treeseq to read it."
            )
        super().__init__(message)


class MalformedEncodingError(FileFormatError, LibraryError):
    """
    Column lengths are inconsistent with each other, or the offsets of a
    ragged column are not monotonic.
    """


class ProvenanceValidationError(TreeSeqException):
    """
    A JSON document did not validate against the provenance schema.
    """


class SchemaMismatchError(TreeSeqException):
    """
    A metadata object or payload does not agree with the metadata schema.
    """


class MetadataValidationError(SchemaMismatchError):
    """
    A metadata object did not validate against the metadata schema.
    """


class MetadataEncodingError(SchemaMismatchError):
    """
    A metadata object was of a type that could not be encoded
    """


class MetadataSchemaValidationError(TreeSeqException):
    """
    A metadata schema object did not validate against the metaschema.
    """


class ImmutableTableError(ValueError):
    """
    Raised when attempting to modify the tables of a tree sequence.

    Use TreeSequence.dump_tables() to get a mutable copy.
    """
