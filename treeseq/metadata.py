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
Classes for metadata decoding, encoding and validation.

The tables only ever store metadata as raw bytes together with a schema
string. Everything in this module sits above that byte-level contract: a
:class:`MetadataSchema` names a codec, and the codec turns Python objects into
bytes and back.
"""
from __future__ import annotations

import abc
import builtins
import collections
import copy
import functools
import json
import pprint
import struct
import types
from typing import Any
from typing import Mapping

import jsonschema

import treeseq.exceptions as exceptions
import treeseq.util as util

__builtins__object__setattr__ = builtins.object.__setattr__


def replace_root_refs(obj):
    if type(obj) is list:
        return [replace_root_refs(j) for j in obj]
    elif type(obj) is dict:
        ret = {k: replace_root_refs(v) for k, v in obj.items()}
        if ret.get("$ref") == "#":
            ret["$ref"] = "#/definitions/root"
        return ret
    else:
        return obj


# Metadata schemas are Draft 7 JSON schemas with a required top-level
# "codec" key, and the top-level type must be an object (or object/null).
TreeSeqMetadataSchemaValidator = jsonschema.validators.extend(
    jsonschema.validators.Draft7Validator
)
deref_meta_schema: Mapping[str, Any] = copy.deepcopy(
    TreeSeqMetadataSchemaValidator.META_SCHEMA
)
# "required" must only apply at the top level, so references to the root
# schema are rewritten to point at a copy.
deref_meta_schema = replace_root_refs(deref_meta_schema)
deref_meta_schema["definitions"]["root"] = copy.deepcopy(deref_meta_schema)
deref_meta_schema["codec"] = {"type": "string"}
deref_meta_schema["required"] = ["codec"]
deref_meta_schema["properties"]["type"] = {"enum": ["object", ["object", "null"]]}
# A distinct URL keeps jsonschema from serving the stock metaschema from its cache
deref_meta_schema["$schema"] = "http://json-schema.org/draft-07/schema#treeseq"
TreeSeqMetadataSchemaValidator.META_SCHEMA = deref_meta_schema


class AbstractMetadataCodec(metaclass=abc.ABCMeta):
    """
    Superclass of all MetadataCodecs. A codec is constructed from a schema
    and converts between Python objects and the bytes stored in a table.
    """

    def __init__(self, schema: Mapping[str, Any]) -> None:
        raise NotImplementedError  # pragma: no cover

    @classmethod
    def modify_schema(cls, schema: Mapping) -> Mapping:
        return schema

    @classmethod
    def is_schema_trivial(cls, schema: Mapping) -> bool:
        return False

    @abc.abstractmethod
    def encode(self, obj: Any) -> bytes:
        raise NotImplementedError  # pragma: no cover

    @abc.abstractmethod
    def decode(self, encoded: bytes) -> Any:
        raise NotImplementedError  # pragma: no cover


codec_registry = {}


def register_metadata_codec(
    codec_cls: type[AbstractMetadataCodec], codec_id: str
) -> None:
    """
    Register a metadata codec class.
    This function maintains a mapping from metadata codec identifiers used in schemas
    to codec classes. When a codec class is registered, it will replace any class
    previously registered under the same codec identifier, if present.

    :param str codec_id: String to use to refer to the codec in the schema.
    """
    codec_registry[codec_id] = codec_cls


class JSONCodec(AbstractMetadataCodec):
    def default_validator(validator, types, instance, schema):
        # Defaults are only filled in at the top level on decode
        if validator.is_type(instance, "object"):
            for v in instance.get("properties", {}).values():
                for v2 in v.get("properties", {}).values():
                    if "default" in v2:
                        yield jsonschema.ValidationError(
                            "Defaults can only be specified at the top level"
                            " for JSON codec"
                        )

    schema_validator = jsonschema.validators.extend(
        TreeSeqMetadataSchemaValidator, {"default": default_validator}
    )

    @classmethod
    def is_schema_trivial(cls, schema: Mapping) -> bool:
        return len(schema.get("properties", {})) == 0

    def __init__(self, schema: Mapping[str, Any]) -> None:
        try:
            self.schema_validator.check_schema(schema)
        except jsonschema.exceptions.SchemaError as ve:
            raise exceptions.MetadataSchemaValidationError(str(ve)) from ve
        self.defaults = {
            key: prop["default"]
            for key, prop in schema.get("properties", {}).items()
            if "default" in prop
        }

    def encode(self, obj: Any) -> bytes:
        try:
            return util.canonical_json(obj).encode()
        except TypeError as e:
            raise exceptions.MetadataEncodingError(
                f"Could not encode metadata: {e}"
            ) from e

    def decode(self, encoded: bytes) -> Any:
        if len(encoded) == 0:
            result = {}
        else:
            try:
                result = json.loads(bytes(encoded).decode())
            except (UnicodeDecodeError, json.JSONDecodeError) as e:
                raise exceptions.SchemaMismatchError(
                    f"Metadata is not valid JSON: {e}"
                ) from e
        if isinstance(result, dict):
            return dict(self.defaults, **result)
        return result


register_metadata_codec(JSONCodec, "json")


class NOOPCodec(AbstractMetadataCodec):
    def __init__(self, schema: Mapping[str, Any]) -> None:
        pass

    def encode(self, data: bytes) -> bytes:
        return data

    def decode(self, data: bytes) -> bytes:
        return data


def binary_format_validator(validator, types, instance, schema):
    # Run the stock "type" keyword first; its home moved in jsonschema 4.19.1
    try:
        yield from jsonschema._keywords.type(validator, types, instance, schema)
    except AttributeError:
        yield from jsonschema._validators.type(validator, types, instance, schema)
    if validator.is_type(instance, "object"):
        for v in instance.values():
            if (
                isinstance(v, dict)
                and v.get("type")
                not in (None, "object", "array", "null", ["object", "null"])
                and "binaryFormat" not in v
            ):
                yield jsonschema.ValidationError(
                    f"{v['type']} type must have binaryFormat set"
                )


StructCodecSchemaValidator = jsonschema.validators.extend(
    TreeSeqMetadataSchemaValidator, {"type": binary_format_validator}
)
struct_meta_schema: Mapping[str, Any] = copy.deepcopy(
    StructCodecSchemaValidator.META_SCHEMA
)
_struct_keywords = {
    "binaryFormat": {"type": "string", "pattern": r"^([cbB\?hHiIlLqQfd]|\d*[sx])$"},
    "arrayLengthFormat": {"type": "string", "pattern": r"^[BHILQ]$"},
    "index": {"type": "number"},
    "stringEncoding": {"type": "string"},
    "nullTerminated": {"type": "boolean"},
    "length": {"type": "integer", "minimum": 0},
}
for _keyword, _sub_schema in _struct_keywords.items():
    struct_meta_schema["properties"][_keyword] = _sub_schema
    struct_meta_schema["definitions"]["root"]["properties"][_keyword] = _sub_schema
StructCodecSchemaValidator.META_SCHEMA = struct_meta_schema


class StructCodec(AbstractMetadataCodec):
    """
    Codec for fixed layout binary metadata, as produced by C ``struct``
    definitions. Every scalar property needs a ``binaryFormat`` (a single
    :mod:`struct` format character, or ``Ns``/``Nx`` for strings and padding),
    object properties are encoded in ``index`` order (ties broken by name),
    and arrays carry a length prefix in ``arrayLengthFormat`` (default ``L``)
    unless a fixed ``length`` is given. All values are little endian.
    """

    @classmethod
    def ordered_properties(cls, sub_schema):
        return sorted(
            sub_schema.get("properties", {}).items(),
            key=lambda item: (item[1].get("index", 0), item[0]),
        )

    @classmethod
    def modify_schema(cls, schema: Mapping) -> Mapping:
        # Objects are fixed: every property without a default is required and
        # no others are allowed.
        def fix_objects(obj):
            if isinstance(obj, list):
                return [fix_objects(j) for j in obj]
            if not isinstance(obj, Mapping):
                return obj
            ret = {k: fix_objects(v) for k, v in obj.items()}
            if "object" in ret.get("type", []):
                if "required" not in ret:
                    ret["required"] = [
                        prop
                        for prop, sub_schema in ret.get("properties", {}).items()
                        if "default" not in sub_schema
                    ]
                ret["additionalProperties"] = False
            return ret

        return fix_objects(schema)

    def __init__(self, schema: Mapping[str, Any]) -> None:
        try:
            StructCodecSchemaValidator.check_schema(schema)
        except jsonschema.exceptions.SchemaError as ve:
            raise exceptions.MetadataSchemaValidationError(str(ve)) from ve
        self._encoder = self.make_encode(schema)
        self._decoder = self.make_decode(schema)

    def encode(self, obj: Any) -> bytes:
        try:
            return self._encoder(obj)
        except (struct.error, TypeError, AttributeError) as e:
            raise exceptions.MetadataEncodingError(
                f"Could not encode metadata: {e}"
            ) from e

    def decode(self, encoded: bytes) -> Any:
        buffer = bytes(encoded)
        try:
            value, end = self._decoder(buffer, 0)
        except struct.error as e:
            raise exceptions.SchemaMismatchError(
                f"Metadata does not match the struct layout: {e}"
            ) from e
        if end != len(buffer):
            raise exceptions.SchemaMismatchError(
                f"Metadata has {len(buffer) - end} unused trailing bytes"
            )
        return value

    @classmethod
    def make_encode(cls, sub_schema):
        kind = sub_schema.get("type")
        if isinstance(kind, list):
            encode_object = cls.make_encode(dict(sub_schema, type="object"))
            return lambda obj: b"" if obj is None else encode_object(obj)
        if kind == "object":
            properties = [
                (key, cls.make_encode(prop), prop.get("default"))
                for key, prop in cls.ordered_properties(sub_schema)
            ]
            return lambda obj: b"".join(
                encode(obj.get(key, default)) for key, encode, default in properties
            )
        if kind == "array":
            encode_item = cls.make_encode(sub_schema["items"])
            fixed_length = sub_schema.get("length")
            length_format = "<" + sub_schema.get("arrayLengthFormat", "L")

            def encode_array(array):
                if fixed_length is not None:
                    if len(array) != fixed_length:
                        raise struct.error(
                            f"Array length {len(array)} does not match schema"
                            f" fixed length {fixed_length}"
                        )
                    prefix = b""
                else:
                    prefix = struct.pack(length_format, len(array))
                return prefix + b"".join(encode_item(item) for item in array)

            return encode_array
        fmt = "<" + sub_schema.get("binaryFormat", "0x")
        if kind == "string":
            encoding = sub_schema.get("stringEncoding", "utf-8")
            return lambda string: struct.pack(fmt, string.encode(encoding))
        if kind == "null":
            return lambda _: struct.pack(fmt)
        return struct.Struct(fmt).pack

    @classmethod
    def make_decode(cls, sub_schema):
        # Decoders take (buffer, offset) and return (value, new_offset)
        kind = sub_schema.get("type")
        if isinstance(kind, list):
            decode_object = cls.make_decode(dict(sub_schema, type="object"))

            def decode_object_or_null(buffer, offset):
                if offset == len(buffer):
                    return None, offset
                return decode_object(buffer, offset)

            return decode_object_or_null
        if kind == "object":
            properties = [
                (key, cls.make_decode(prop))
                for key, prop in cls.ordered_properties(sub_schema)
            ]

            def decode_object(buffer, offset):
                ret = {}
                for key, decode in properties:
                    ret[key], offset = decode(buffer, offset)
                return ret, offset

            return decode_object
        if kind == "array":
            decode_item = cls.make_decode(sub_schema["items"])
            fixed_length = sub_schema.get("length")
            length_struct = struct.Struct("<" + sub_schema.get("arrayLengthFormat", "L"))

            def decode_array(buffer, offset):
                if fixed_length is None:
                    (length,) = length_struct.unpack_from(buffer, offset)
                    offset += length_struct.size
                else:
                    length = fixed_length
                ret = []
                for _ in range(length):
                    item, offset = decode_item(buffer, offset)
                    ret.append(item)
                return ret, offset

            return decode_array
        item_struct = struct.Struct("<" + sub_schema.get("binaryFormat", "0x"))
        if kind == "string":
            encoding = sub_schema.get("stringEncoding", "utf-8")
            null_terminated = sub_schema.get("nullTerminated", False)

            def decode_string(buffer, offset):
                (raw,) = item_struct.unpack_from(buffer, offset)
                if null_terminated:
                    raw = raw.split(b"\x00", 1)[0]
                return raw.decode(encoding), offset + item_struct.size

            return decode_string
        if kind == "null":
            return lambda buffer, offset: (None, offset + item_struct.size)

        def decode_scalar(buffer, offset):
            (value,) = item_struct.unpack_from(buffer, offset)
            return value, offset + item_struct.size

        return decode_scalar


register_metadata_codec(StructCodec, "struct")


def validate_bytes(data: bytes | None) -> None:
    if data is not None and not isinstance(data, (bytes, bytearray)):
        raise TypeError(
            f"If no encoding is set metadata should be bytes, found {type(data)}"
        )


class MetadataSchema:
    """
    Class for validating, encoding and decoding metadata.

    :param dict schema: A dict containing a valid JSONSchema object, or None
        for raw bytes.
    """

    def __init__(self, schema: Mapping[str, Any] | None) -> None:
        self._schema = schema
        self._unmodified_schema = schema
        self._bypass_validation = False

        if schema is None:
            self._string = ""
            self._validate_row = validate_bytes
            self.codec_instance = NOOPCodec({})
            self.empty_value = b""
        else:
            try:
                TreeSeqMetadataSchemaValidator.check_schema(schema)
            except jsonschema.exceptions.SchemaError as ve:
                raise exceptions.MetadataSchemaValidationError(str(ve)) from ve
            try:
                codec_cls = codec_registry[schema["codec"]]
            except KeyError:
                raise exceptions.MetadataSchemaValidationError(
                    f"Unrecognised metadata codec '{schema['codec']}'. "
                    f"Valid options are {str(list(codec_registry.keys()))}."
                )
            self._schema = codec_cls.modify_schema(schema)
            self.codec_instance = codec_cls(self._schema)
            self._string = util.canonical_json(self._schema)
            self._validate_row = TreeSeqMetadataSchemaValidator(self._schema).validate
            self._bypass_validation = codec_cls.is_schema_trivial(schema)
            # A top-level null type wins over defaults and required values
            if "null" in self._schema.get("type", []):
                self.empty_value = None
            else:
                self.empty_value = {}
        self.encode_row = self.codec_instance.encode
        self.decode_row = self.codec_instance.decode

    def __repr__(self) -> str:
        return self._string

    def __str__(self) -> str:
        s = pprint.pformat(self._unmodified_schema)
        if "\n" in s:
            return f"treeseq.MetadataSchema(\n{s}\n)"
        return f"treeseq.MetadataSchema({s})"

    def __eq__(self, other) -> bool:
        return isinstance(other, MetadataSchema) and self._string == other._string

    @property
    def schema(self) -> Mapping[str, Any] | None:
        # Return a copy to avoid unintentional mutation
        return copy.deepcopy(self._unmodified_schema)

    def asdict(self) -> Mapping[str, Any] | None:
        """
        Returns a dict representation of this schema. One possible use of this is to
        modify this dict and then pass it to the ``MetadataSchema`` constructor to create
        a similar schema.
        """
        return self.schema

    def validate_and_encode_row(self, row: Any) -> bytes:
        """
        Validate a row (dict) of metadata against this schema and return the encoded
        representation (bytes) using the codec specified in the schema.
        """
        if not self._bypass_validation:
            try:
                self._validate_row(row)
            except jsonschema.exceptions.ValidationError as ve:
                raise exceptions.MetadataValidationError(str(ve)) from ve
        return bytes(self.encode_row(row))

    def decode_row(self, row: bytes) -> Any:
        """
        Decode an encoded row (bytes) of metadata, using the codec specifed in the schema
        and return a python object. Note that no validation of the metadata against the
        schema is performed.
        """
        # Set by __init__
        pass  # pragma: no cover

    def encode_row(self, row: Any) -> bytes:
        """
        Encode a row (dict) of metadata to its binary representation (bytes)
        using the codec specified in the schema. Unlike
        :meth:`validate_and_encode_row` no validation against the schema is performed.
        """
        # Set by __init__
        pass  # pragma: no cover

    @staticmethod
    def permissive_json():
        """
        The simplest, permissive JSON schema. Only specifies the JSON codec and has
        no constraints on the properties.
        """
        return MetadataSchema({"codec": "json"})

    @staticmethod
    def null():
        """
        The null schema which defines no properties and results in raw bytes
        being returned on accessing metadata column.
        """
        return MetadataSchema(None)


# Replicate tables usually share a handful of schemas, so cache them
@functools.lru_cache(maxsize=128)
def parse_metadata_schema(encoded_schema: str) -> MetadataSchema:
    """
    Create a schema object from its string encoding. The empty string is the
    null schema.

    :param str encoded_schema: The string encoded schema.
    :return: A :class:`MetadataSchema` instance.
    """
    if encoded_schema == "":
        return MetadataSchema.null()
    try:
        decoded = json.loads(encoded_schema, object_pairs_hook=collections.OrderedDict)
    except json.decoder.JSONDecodeError:
        raise ValueError(f"Metadata schema is not JSON, found {encoded_schema}")
    return MetadataSchema(decoded)


class _CachedMetadata:
    """
    Descriptor for lazy decoding of metadata on attribute access.
    """

    def __get__(self, row, owner):
        if row is None:
            return self
        if row._metadata_decoder is not None:
            # Rows are frozen dataclasses
            __builtins__object__setattr__(
                row, "_metadata", row._metadata_decoder(row._metadata)
            )
            __builtins__object__setattr__(row, "_metadata_decoder", None)
        return row._metadata

    def __set__(self, row, value):
        __builtins__object__setattr__(row, "_metadata", value)


def lazy_decode(own_init=False):
    def _lazy_decode(cls):
        """
        Modifies a slotted dataclass such that it lazily decodes metadata. If
        the metadata passed to the constructor is encoded, a
        ``metadata_decoder`` keyword argument must also be passed.
        """
        if not own_init:
            wrapped_init = cls.__init__

            def new_init(self, *args, metadata_decoder=None, **kwargs):
                __builtins__object__setattr__(
                    self, "_metadata_decoder", metadata_decoder
                )
                wrapped_init(self, *args, **kwargs)

            cls.__init__ = new_init

        cls.metadata = _CachedMetadata()

        slots = cls.__slots__
        slots.extend(["_metadata", "_metadata_decoder"])
        dict_ = dict()
        sloted_members = dict()
        for k, v in cls.__dict__.items():
            if k not in slots:
                dict_[k] = v
            elif not isinstance(v, types.MemberDescriptorType):
                sloted_members[k] = v
        new_cls = type(cls.__name__, cls.__bases__, dict_)
        for k, v in sloted_members.items():
            setattr(new_cls, k, v)
        return new_cls

    return _lazy_decode


class MetadataProvider:
    """
    Abstract superclass of container objects that provide top-level metadata.
    Subclasses store the raw bytes in ``_metadata_bytes`` and the schema
    string in ``_metadata_schema_string``.
    """

    def _check_mutable(self):
        pass

    @property
    def metadata_schema(self) -> MetadataSchema:
        """
        The :class:`treeseq.MetadataSchema` for this object.
        """
        return parse_metadata_schema(self._metadata_schema_string)

    @metadata_schema.setter
    def metadata_schema(self, schema: MetadataSchema) -> None:
        self._check_mutable()
        if not isinstance(schema, MetadataSchema):
            raise TypeError(
                "Only instances of treeseq.MetadataSchema can be assigned to "
                f"metadata_schema, not {type(schema)}"
            )
        # Round trip to check the string form parses
        text_version = repr(schema)
        parse_metadata_schema(text_version)
        self._metadata_schema_string = text_version

    @property
    def metadata(self) -> Any:
        """
        The decoded metadata for this object.
        """
        return self.metadata_schema.decode_row(self.metadata_bytes)

    @metadata.setter
    def metadata(self, metadata: bytes | dict | None) -> None:
        self._check_mutable()
        encoded = self.metadata_schema.validate_and_encode_row(metadata)
        self._metadata_bytes = bytes(encoded)

    @property
    def metadata_bytes(self) -> Any:
        """
        The raw bytes of metadata for this object.
        """
        return self._metadata_bytes

    def assert_equals(self, other: MetadataProvider):
        if self.metadata_schema != other.metadata_schema:
            raise AssertionError(
                f"Metadata schemas differ: self={self.metadata_schema} "
                f"other={other.metadata_schema}"
            )
        if self.metadata != other.metadata:
            raise AssertionError(
                f"Metadata differs: self={self.metadata} other={other.metadata}"
            )
