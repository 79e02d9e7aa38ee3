"""
VARSCOPE DATA TYPES - The Closed Type Algebra

The editor stores argument types as string tags ("String", "Object",
"Array_Object", "Array_File_Image", ...). Queries never pattern-match on
those strings; they parse them once into a closed sum type:

    DataType = Scalar(kind) | ArrayOf(element) | ObjectOf(fields)

ObjectOf carries the nested subArgs so "unwrap the array to its item type"
keeps the object shape without a second lookup.
"""
from typing import Any, List, Optional, Sequence, Tuple, Union

import msgspec

from core.ontology import ARRAY_PREFIX, OBJECT_TAG, ScalarKind


class Scalar(msgspec.Struct, frozen=True):
    """A leaf value (String, Integer, File_Image, ...)."""
    kind: str


class ArrayOf(msgspec.Struct, frozen=True):
    """A homogeneous list of some element type."""
    element: "DataType"


class ObjectOf(msgspec.Struct, frozen=True):
    """A record whose fields are the ArgDefs of its subArgs."""
    fields: Tuple[Any, ...] = ()


DataType = Union[Scalar, ArrayOf, ObjectOf]

DEFAULT_SCALAR = Scalar(kind=ScalarKind.STRING.value)


def parse_data_type(tag: Optional[str], sub_args: Sequence[Any] = ()) -> DataType:
    """
    Parse an editor type tag into a DataType.

    A missing tag reads as String. Unknown scalar tags are kept verbatim so
    a newer editor's types survive a round trip.
    """
    if not tag:
        return DEFAULT_SCALAR
    if tag == OBJECT_TAG:
        return ObjectOf(fields=tuple(sub_args or ()))
    if tag.startswith(ARRAY_PREFIX):
        inner = tag[len(ARRAY_PREFIX):] or OBJECT_TAG
        return ArrayOf(element=parse_data_type(inner, sub_args))
    return Scalar(kind=tag)


def format_data_type(data_type: DataType) -> str:
    """Render a DataType back into its editor tag."""
    if isinstance(data_type, Scalar):
        return data_type.kind
    if isinstance(data_type, ObjectOf):
        return OBJECT_TAG
    if isinstance(data_type, ArrayOf):
        return ARRAY_PREFIX + format_data_type(data_type.element)
    raise TypeError(f"Not a DataType: {data_type!r}")


def element_type(data_type: DataType) -> Optional[DataType]:
    """Item type of an array, None for anything else."""
    if isinstance(data_type, ArrayOf):
        return data_type.element
    return None


def is_array(data_type: DataType) -> bool:
    return isinstance(data_type, ArrayOf)


def object_fields(data_type: DataType) -> List[Any]:
    """Nested fields of an object (or of an array of objects)."""
    if isinstance(data_type, ObjectOf):
        return list(data_type.fields)
    if isinstance(data_type, ArrayOf):
        return object_fields(data_type.element)
    return []


def wrap_array(data_type: DataType) -> ArrayOf:
    """
    Type of collecting one value per loop iteration.

    The editor has no nested array tags, so collecting arrays yields an
    array of objects.
    """
    if isinstance(data_type, ArrayOf):
        return ArrayOf(element=ObjectOf(fields=tuple(object_fields(data_type))))
    return ArrayOf(element=data_type)
