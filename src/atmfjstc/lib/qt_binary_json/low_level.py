"""
Constants, enums and bit-fields of the Qt binary JSON format that are useful during decoding but rarely used otherwise.

All multi-byte quantities in the format are little-endian. All offsets are relative to the start of the container in
which they occur.
"""

from dataclasses import dataclass
from enum import IntEnum


QBJS_MAGIC = b'qbjs'
QBJS_TAG = int.from_bytes(QBJS_MAGIC, byteorder='little')
QBJS_SUPPORTED_VERSION = 1

DOCUMENT_HEADER_SIZE = 8
CONTAINER_HEADER_SIZE = 12
TABLE_ENTRY_SIZE = 4


class QBJSValueType(IntEnum):
    NULL = 0x0
    BOOL = 0x1
    DOUBLE = 0x2
    STRING = 0x3
    ARRAY = 0x4
    OBJECT = 0x5

    # Qt defines this, but it cannot be expressed in the 3-bit type field of a descriptor. Anything unrecognized
    # decodes to undefined anyway.
    UNDEFINED = 0x80


@dataclass(frozen=True)
class QBJSValueDescriptor:
    """
    The packed 32-bit field that describes a value (and, for object entries, the encoding of its key).

    Layout, from the least significant bit:

    - bits 0-2: the value type (see `QBJSValueType`)
    - bit 3: "latin or int". For doubles, marks that the payload is an inline unsigned integer rather than an offset.
    - bit 4: "latin key". Marks that the accompanying string uses the single-byte Latin-1 encoding.
    - bits 5-31: the payload, either an inline small integer (bool, inline double) or an offset into the enclosing
      container (string, double, array, object).
    """

    raw_type: int
    latin_or_int: bool
    latin_key: bool
    payload: int

    @staticmethod
    def from_raw(raw: int) -> 'QBJSValueDescriptor':
        return QBJSValueDescriptor(
            raw_type=raw & 0x7,
            latin_or_int=(raw & 0x8) != 0,
            latin_key=(raw & 0x10) != 0,
            payload=(raw & 0xffffffe0) >> 5,
        )


@dataclass(frozen=True)
class QBJSContainerHeader:
    """
    The 12-byte header at the start of every array or object.

    Attributes:
        byte_size: The total size of the container, in bytes. Nested containers may not extend past it.
        is_object: Whether this is an object (as opposed to an array)
        element_count: The number of entries declared in the offset table
        table_offset: The offset of the offset table, relative to the start of the container
    """

    byte_size: int
    is_object: bool
    element_count: int
    table_offset: int

    @staticmethod
    def from_raw(byte_size: int, raw_header: int, table_offset: int) -> 'QBJSContainerHeader':
        return QBJSContainerHeader(
            byte_size=byte_size,
            is_object=(raw_header & 0x1) == 1,
            element_count=raw_header >> 1,
            table_offset=table_offset,
        )
