"""
A reader for the Qt binary JSON format (the ``qbjs`` documents produced by ``QJsonDocument::toBinaryData``).

This package does not depend on Qt in any way. A document is decoded from its bytes like so::

    document = parse(data)

    print(document.root.to_python())

The decoded tree is made up of `QJsonValue` objects mirroring the Qt value types. Decoding is all-or-nothing: any
structural problem in the data causes a `QBJSError` to be raised. The only exception is value types that are not
recognized, which decode to `QJsonUndefined` and produce a warning in the `QBJSDocument.warnings` list.

Only version 1 of the format is supported, and there is no facility for writing documents.
"""

from dataclasses import dataclass, field
from enum import Enum
from io import IOBase, TextIOBase
from os import PathLike
from types import MappingProxyType
from typing import Any, AnyStr, BinaryIO, Callable, ClassVar, Dict, Iterator, List, Mapping, Optional, Tuple, Union

from atmfjstc.lib.error_utils import WarningWithContext

from .low_level import QBJSValueType


__version__ = '1.0.0'


def parse(
    data: bytes, options: Optional['QBJSDecodeOptions'] = None,
    diagnostic_sink: Optional[Callable[['QBJSDecodeWarning'], None]] = None,
) -> 'QBJSDocument':
    """
    Decodes a Qt binary JSON document.

    Args:
        data: The entire document, as a bytes-like object.
        options: Settings for the ambiguous parts of the format. Defaults to `QBJSDecodeOptions()`.
        diagnostic_sink: If provided, it will be called with each warning as it is generated. The warnings are also
            available in the returned document regardless.

    Returns:
        A `QBJSDocument` whose root is either a `QJsonObject` or a `QJsonArray`.

    Raises:
        QBJSFormatError: If the document has the wrong magic or version, or is otherwise structurally invalid.
        QBJSTruncatedDataError: If the data ends before a structure that is supposedly present.
        QBJSSizeMismatchError: If a container declares more entries than its offset table can hold.
        QBJSInvalidEncodingError: If a UTF-16 string is malformed and strict decoding is in effect.
    """
    from ._parse import parse_document

    return parse_document(data, options or QBJSDecodeOptions(), diagnostic_sink)


def parse_file(
    path_or_fileobj: Union[PathLike, AnyStr, BinaryIO], options: Optional['QBJSDecodeOptions'] = None,
    diagnostic_sink: Optional[Callable[['QBJSDecodeWarning'], None]] = None,
) -> 'QBJSDocument':
    """
    Like `parse`, but reads the document from a file or binary file object.

    The data is read in its entirety from the current position of the file object. The file object is not closed.
    """

    if isinstance(path_or_fileobj, IOBase):
        if isinstance(path_or_fileobj, TextIOBase):
            raise TypeError("Qt binary JSON documents must be read from binary, not text file objects")

        data = path_or_fileobj.read()
    else:
        with open(path_or_fileobj, 'rb') as f:
            data = f.read()

    return parse(data, options, diagnostic_sink)


class QBJSStringLatinFlag(Enum):
    """
    Selects the descriptor bit that marks a string value as Latin-1 encoded.
    """
    KEY = 'key'  # bit 4, the same flag used for object keys
    INLINE = 'inline'  # bit 3, the "latin or int" flag


@dataclass(frozen=True)
class QBJSDecodeOptions:
    """
    Settings for the parts of the format that are not consistently implemented across known readers.

    The defaults decode all documents we have seen in practice.

    Attributes:
        string_length_bytes: The width of the length prefix of strings (2 or 4)
        utf16_big_endian: Whether the code units in non-Latin strings are big-endian. They are little-endian by
            default, like everything else in the format.
        strict_utf16: If True, malformed UTF-16 strings cause a `QBJSInvalidEncodingError`. Otherwise, the bad code
            units are replaced with U+FFFD.
        value_latin_flag: Which descriptor bit marks string *values* as Latin-1. Keys always use the "latin key" bit.
        max_depth: The maximum nesting of containers, the root counting as 1. Use None to disable the limit, which
            exposes the decoder to running out of stack on adversarial input.
    """

    string_length_bytes: int = 2
    utf16_big_endian: bool = False
    strict_utf16: bool = True
    value_latin_flag: QBJSStringLatinFlag = QBJSStringLatinFlag.KEY
    max_depth: Optional[int] = 128

    def __post_init__(self):
        if self.string_length_bytes not in (2, 4):
            raise ValueError(f"string_length_bytes must be 2 or 4 (is: {self.string_length_bytes})")
        if not isinstance(self.value_latin_flag, QBJSStringLatinFlag):
            raise ValueError(f"value_latin_flag must be a QBJSStringLatinFlag (is: {self.value_latin_flag!r})")
        if (self.max_depth is not None) and (self.max_depth < 1):
            raise ValueError(f"max_depth must be strictly positive! (is: {self.max_depth})")


@dataclass(frozen=True)
class QJsonValue:
    value_type: ClassVar[Optional[QBJSValueType]] = None

    def to_python(self, undefined: Any = None, drop_undefined: bool = False) -> Any:
        """
        Converts the value to plain Python data (``None``, `bool`, `float`, `str`, `list`, `dict`).

        Args:
            undefined: The placeholder that undefined values are converted to
            drop_undefined: If True, object members with undefined values are omitted altogether. Undefined array
                items are always kept so as to preserve the indexes of the others.
        """
        raise NotImplementedError


@dataclass(frozen=True)
class QJsonNull(QJsonValue):
    value_type: ClassVar[QBJSValueType] = QBJSValueType.NULL

    def to_python(self, undefined: Any = None, drop_undefined: bool = False) -> Any:
        return None


@dataclass(frozen=True)
class QJsonBool(QJsonValue):
    value_type: ClassVar[QBJSValueType] = QBJSValueType.BOOL

    value: bool

    def to_python(self, undefined: Any = None, drop_undefined: bool = False) -> Any:
        return self.value


@dataclass(frozen=True)
class QJsonNumber(QJsonValue):
    value_type: ClassVar[QBJSValueType] = QBJSValueType.DOUBLE

    value: float

    def to_python(self, undefined: Any = None, drop_undefined: bool = False) -> Any:
        return self.value


@dataclass(frozen=True)
class QJsonString(QJsonValue):
    value_type: ClassVar[QBJSValueType] = QBJSValueType.STRING

    value: str

    def to_python(self, undefined: Any = None, drop_undefined: bool = False) -> Any:
        return self.value


@dataclass(frozen=True)
class QJsonArray(QJsonValue):
    value_type: ClassVar[QBJSValueType] = QBJSValueType.ARRAY

    items: Tuple[QJsonValue, ...] = ()

    def __len__(self) -> int:
        return len(self.items)

    def __getitem__(self, index: int) -> QJsonValue:
        return self.items[index]

    def __iter__(self) -> Iterator[QJsonValue]:
        return iter(self.items)

    def to_python(self, undefined: Any = None, drop_undefined: bool = False) -> List[Any]:
        return [item.to_python(undefined, drop_undefined) for item in self.items]


@dataclass(frozen=True)
class QJsonObject(QJsonValue):
    """
    A JSON object.

    Attributes:
        declared_size: The number of entries declared in the container header. This may be larger than the number of
            entries in `values` if the object contains duplicate keys, in which case the last one wins.
        values: The members of the object, by key. This is a read-only view; any mapping passed in is copied.
    """

    value_type: ClassVar[QBJSValueType] = QBJSValueType.OBJECT

    declared_size: int = 0
    values: Mapping[str, QJsonValue] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, 'values', MappingProxyType(dict(self.values)))

    def __hash__(self) -> int:
        return hash((self.declared_size, frozenset(self.values.items())))

    def __len__(self) -> int:
        return len(self.values)

    def __contains__(self, key: str) -> bool:
        return key in self.values

    def __getitem__(self, key: str) -> QJsonValue:
        return self.values[key]

    def get(self, key: str, default: Optional[QJsonValue] = None) -> Optional[QJsonValue]:
        return self.values.get(key, default)

    def keys(self):
        return self.values.keys()

    def items(self):
        return self.values.items()

    def to_python(self, undefined: Any = None, drop_undefined: bool = False) -> Dict[str, Any]:
        return {
            key: value.to_python(undefined, drop_undefined)
            for key, value in self.values.items()
            if not (drop_undefined and isinstance(value, QJsonUndefined))
        }


@dataclass(frozen=True)
class QJsonUndefined(QJsonValue):
    """
    Stands in for a value whose type was not recognized. Note that this is distinct from `QJsonNull`.

    Attributes:
        raw_type: The unrecognized type code, for reference. It does not take part in comparisons.
    """

    raw_type: Optional[int] = field(default=None, compare=False)

    def to_python(self, undefined: Any = None, drop_undefined: bool = False) -> Any:
        return undefined


QJsonContainer = Union[QJsonObject, QJsonArray]


@dataclass(frozen=True)
class QBJSDocument:
    """
    A decoded Qt binary JSON document.

    Attributes:
        tag: The magic tag, as a 32-bit int. Always equal to ``b'qbjs'`` read as a little-endian int.
        version: The format version. Always 1.
        root: The top-level container
        warnings: Non-fatal problems encountered while decoding, in the order they occurred
    """

    tag: int
    version: int
    root: QJsonContainer
    warnings: Tuple['QBJSDecodeWarning', ...] = ()

    @property
    def magic(self) -> bytes:
        return self.tag.to_bytes(4, byteorder='little')


class QBJSDecodeWarning(WarningWithContext):
    path: str

    def __init__(self, path: str, message: str):
        super().__init__(message)
        self.path = path

    def str_with_context(self) -> str:
        return f"At {self.path or '/'}: {self.str_without_context()}"


class QBJSUnknownValueTypeWarning(QBJSDecodeWarning):
    raw_type: int
    payload: int

    def __init__(self, path: str, raw_type: int, payload: int):
        super().__init__(
            path, f"Unrecognized value type 0x{raw_type:x} (payload 0x{payload:x}), decoded as undefined"
        )
        self.raw_type = raw_type
        self.payload = payload


class QBJSError(Exception):
    pass


class QBJSFormatError(QBJSError):
    pass


class QBJSWrongMagicError(QBJSFormatError):
    found_magic: bytes

    def __init__(self, found_magic: bytes):
        super().__init__(f"Data is not a Qt binary JSON document (magic is 0x{found_magic.hex()})")
        self.found_magic = found_magic


class QBJSUnsupportedVersionError(QBJSFormatError):
    version: int

    def __init__(self, version: int):
        super().__init__(f"Qt binary JSON document has version {version}, can only decode version 1")
        self.version = version


class QBJSIllegalRootError(QBJSFormatError):
    def __init__(self, root: QJsonValue):
        super().__init__(f"The root of the document must be an object or an array, found {type(root).__name__}")


class QBJSNestingTooDeepError(QBJSFormatError):
    path: str
    max_depth: int

    def __init__(self, path: str, max_depth: int):
        super().__init__(f"At {path or '/'}, containers are nested more than {max_depth} levels deep")
        self.path = path
        self.max_depth = max_depth


class QBJSTruncatedDataError(QBJSError):
    position: Optional[int]
    meaning: Optional[str]

    def __init__(self, message: str, position: Optional[int] = None, meaning: Optional[str] = None):
        super().__init__(message)
        self.position = position
        self.meaning = meaning


class QBJSSizeMismatchError(QBJSError):
    path: str
    is_object: bool
    expected: int
    available: int

    def __init__(self, path: str, is_object: bool, expected: int, available: int):
        super().__init__(
            f"At {path or '/'}, the {'object' if is_object else 'array'} declares {expected} entries, but its offset "
            f"table only has room for {available}"
        )
        self.path = path
        self.is_object = is_object
        self.expected = expected
        self.available = available


class QBJSInvalidEncodingError(QBJSError):
    pass
