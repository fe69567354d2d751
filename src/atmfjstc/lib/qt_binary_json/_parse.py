"""
The decoder proper. Use `parse` from the package root rather than calling this directly.
"""

import logging

from dataclasses import dataclass, field
from os import SEEK_SET
from typing import Callable, List, Optional, Tuple, Union

from atmfjstc.lib.binary_utils.BinaryReader import BinaryReader, BinaryReaderFormatError, BinaryReaderWrongMagicError

from . import QBJSDocument, QBJSDecodeOptions, QBJSDecodeWarning, QBJSUnknownValueTypeWarning, QBJSStringLatinFlag, \
    QJsonValue, QJsonNull, QJsonBool, QJsonNumber, QJsonString, QJsonArray, QJsonObject, QJsonUndefined, \
    QJsonContainer, QBJSWrongMagicError, QBJSUnsupportedVersionError, QBJSIllegalRootError, QBJSNestingTooDeepError, \
    QBJSTruncatedDataError, QBJSSizeMismatchError, QBJSInvalidEncodingError
from .low_level import QBJS_MAGIC, QBJS_TAG, QBJS_SUPPORTED_VERSION, DOCUMENT_HEADER_SIZE, TABLE_ENTRY_SIZE, \
    QBJSValueType, QBJSValueDescriptor, QBJSContainerHeader


LOG = logging.getLogger(__name__)


@dataclass
class _DecodeContext:
    options: QBJSDecodeOptions
    diagnostic_sink: Optional[Callable[[QBJSDecodeWarning], None]] = None
    warnings: List[QBJSDecodeWarning] = field(default_factory=list)
    depth: int = 0

    def warn(self, warning: QBJSDecodeWarning):
        LOG.warning("%s", warning)

        self.warnings.append(warning)

        if self.diagnostic_sink is not None:
            self.diagnostic_sink(warning)


def parse_document(
    data: Union[bytes, bytearray, memoryview], options: QBJSDecodeOptions,
    diagnostic_sink: Optional[Callable[[QBJSDecodeWarning], None]],
) -> QBJSDocument:
    if isinstance(data, (bytearray, memoryview)):
        data = bytes(data)

    context = _DecodeContext(options=options, diagnostic_sink=diagnostic_sink)
    reader = BinaryReader(data, big_endian=False)

    LOG.debug("Decoding Qt binary JSON document of %d bytes", len(data))

    try:
        try:
            reader.expect_magic(QBJS_MAGIC, 'QBJS tag')
        except BinaryReaderWrongMagicError as e:
            raise QBJSWrongMagicError(e.found_magic) from e

        version = reader.read_fixed_size_int(4, 'QBJS version')
        if version != QBJS_SUPPORTED_VERSION:
            raise QBJSUnsupportedVersionError(version)

        root = _decode_container(context, data[DOCUMENT_HEADER_SIZE:], '')
    except BinaryReaderFormatError as e:
        raise QBJSTruncatedDataError(
            f"Qt binary JSON data ends prematurely: {e}",
            position=getattr(e, 'position', None),
            meaning=getattr(e, 'meaning', None),
        ) from e

    if not isinstance(root, (QJsonObject, QJsonArray)):
        raise QBJSIllegalRootError(root)

    LOG.debug("Finished decoding Qt binary JSON document")

    return QBJSDocument(tag=QBJS_TAG, version=version, root=root, warnings=tuple(context.warnings))


def _decode_container(context: _DecodeContext, region: bytes, path: str) -> QJsonContainer:
    max_depth = context.options.max_depth
    if (max_depth is not None) and (context.depth >= max_depth):
        raise QBJSNestingTooDeepError(path, max_depth)

    reader = BinaryReader(region, big_endian=False)
    header = QBJSContainerHeader.from_raw(*reader.read_struct('III', 'container header'))

    LOG.debug(
        "Container at %s: %s with %d entries, size 0x%x, table at 0x%x",
        path or '/', 'object' if header.is_object else 'array', header.element_count, header.byte_size,
        header.table_offset
    )

    table = region[header.table_offset:]

    context.depth += 1
    try:
        if header.is_object:
            return _decode_object(context, region, table, header, path)

        return _decode_array(context, region, table, header, path)
    finally:
        context.depth -= 1


def _read_offset_table(table: bytes, header: QBJSContainerHeader, path: str) -> Tuple[int, ...]:
    available = len(table) // TABLE_ENTRY_SIZE
    if available < header.element_count:
        raise QBJSSizeMismatchError(path, header.is_object, header.element_count, available)

    if header.element_count == 0:
        return ()

    return BinaryReader(table, big_endian=False).read_struct(f'{header.element_count}I', 'offset table')


def _decode_array(
    context: _DecodeContext, region: bytes, table: bytes, header: QBJSContainerHeader, path: str
) -> QJsonArray:
    items = []

    # For arrays, the table holds the value descriptors themselves
    for index, raw_descriptor in enumerate(_read_offset_table(table, header, path)):
        descriptor = QBJSValueDescriptor.from_raw(raw_descriptor)

        LOG.debug("Array entry %d at %s: %s", index, path or '/', descriptor)

        value = _decode_value(context, descriptor, region, header.byte_size, f'{path}/{index}')

        LOG.debug("Array entry %d at %s decoded as %r", index, path or '/', value)

        items.append(value)

    return QJsonArray(tuple(items))


def _decode_object(
    context: _DecodeContext, region: bytes, table: bytes, header: QBJSContainerHeader, path: str
) -> QJsonObject:
    values = {}

    reader = BinaryReader(region, big_endian=False)

    for index, entry_offset in enumerate(_read_offset_table(table, header, path)):
        reader.seek(entry_offset, SEEK_SET)

        descriptor = QBJSValueDescriptor.from_raw(reader.read_fixed_size_int(4, f'descriptor for entry {index}'))
        key = _read_string(context, reader, descriptor.latin_key, f'key for entry {index}')

        LOG.debug("Object entry %d at %s: key %r, %s", index, path or '/', key, descriptor)

        value = _decode_value(context, descriptor, region, header.byte_size, f'{path}/{_escape_key(key)}')

        LOG.debug("Object entry %d at %s decoded as %r", index, path or '/', value)

        values[key] = value

    return QJsonObject(declared_size=header.element_count, values=values)


def _escape_key(key: str) -> str:
    # As in JSON Pointer (RFC 6901)
    return key.replace('~', '~0').replace('/', '~1')


def _decode_value(
    context: _DecodeContext, descriptor: QBJSValueDescriptor, region: bytes, byte_size: int, path: str
) -> QJsonValue:
    value_type = descriptor.raw_type

    if value_type == QBJSValueType.NULL:
        return QJsonNull()
    if value_type == QBJSValueType.BOOL:
        return QJsonBool(descriptor.payload != 0)
    if value_type == QBJSValueType.DOUBLE:
        if descriptor.latin_or_int:
            return QJsonNumber(float(descriptor.payload))

        reader = BinaryReader(region, big_endian=False).seek(descriptor.payload, SEEK_SET)
        return QJsonNumber(reader.read_struct('d', f'number at {path}')[0])
    if value_type == QBJSValueType.STRING:
        if context.options.value_latin_flag == QBJSStringLatinFlag.INLINE:
            latin = descriptor.latin_or_int
        else:
            latin = descriptor.latin_key

        reader = BinaryReader(region, big_endian=False).seek(descriptor.payload, SEEK_SET)
        return QJsonString(_read_string(context, reader, latin, f'string at {path}'))
    if value_type in (QBJSValueType.ARRAY, QBJSValueType.OBJECT):
        # A nested container may not extend past the end of the one enclosing it
        return _decode_container(context, region[:byte_size][descriptor.payload:], path)

    context.warn(QBJSUnknownValueTypeWarning(path, value_type, descriptor.payload))

    return QJsonUndefined(raw_type=value_type)


def _read_string(context: _DecodeContext, reader: BinaryReader, latin: bool, meaning: str) -> str:
    options = context.options

    length = reader.read_fixed_size_int(options.string_length_bytes, f'length of {meaning}')

    if latin:
        return reader.read_amount(length, meaning).decode('latin-1')

    raw_data = reader.read_amount(2 * length, meaning)

    try:
        return raw_data.decode(
            'utf-16-be' if options.utf16_big_endian else 'utf-16-le',
            errors='strict' if options.strict_utf16 else 'replace'
        )
    except UnicodeDecodeError as e:
        raise QBJSInvalidEncodingError(f"Invalid UTF-16 data in {meaning}") from e
