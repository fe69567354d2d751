import io
import os
import tempfile
import unittest

from atmfjstc.lib.qt_binary_json import parse, parse_file, QJsonObject, QJsonArray, QJsonString, QJsonNumber, \
    QJsonBool, QBJSFormatError, QBJSWrongMagicError, QBJSUnsupportedVersionError, QBJSTruncatedDataError

from atmfjstc.lib.qt_binary_json.low_level import QBJSValueType

from qbjs_builders import document, array_of, descriptor


OBJECT_DOC = \
    b'qbjs\x01\x00\x00\x00$\x00\x00\x00\x03\x00\x00\x00 \x00\x00\x00\x1B\x03\x00\x00\x04\x00test\x00\x00\x03\x00' \
    b'yes\x00\x00\x00\x0C\x00\x00\x00'

NUMBER_DOC = \
    b'qbjs\x01\x00\x00\x00\x18\x00\x00\x00\x02\x00\x00\x00\x14\x00\x00\x00\x33\x33\x33\x33\x33\x33\x24\x40' \
    b'\x82\x01\x00\x00'

LATIN_STRING_DOC = \
    b'qbjs\x01\x00\x00\x00\x14\x00\x00\x00\x02\x00\x00\x00\x10\x00\x00\x00\x01\x00\xF6\x00\x8B\x01\x00\x00'

BOOL_DOC = b'qbjs\x01\x00\x00\x00\x10\x00\x00\x00\x02\x00\x00\x00\x0C\x00\x00\x00!\x00\x00\x00'

NESTED_OBJECT_DOC = \
    b'qbjs\x01\x00\x00\x00\x34\x00\x00\x00\x02\x00\x00\x00\x30\x00\x00\x00\x24\x00\x00\x00\x03\x00\x00\x00' \
    b'\x20\x00\x00\x00\x1B\x03\x00\x00\x04\x00test\x00\x00\x03\x00yes\x00\x00\x00\x0C\x00\x00\x00' \
    b'\x85\x01\x00\x00'

INLINE_NUMBER_DOC = b'qbjs\x01\x00\x00\x00\x10\x00\x00\x00\x02\x00\x00\x00\x0C\x00\x00\x00\x4A\x01\x00\x00'


class ParseKnownDocumentsTest(unittest.TestCase):
    def test_object(self):
        doc = parse(OBJECT_DOC)

        self.assertIsInstance(doc.root, QJsonObject)
        self.assertEqual(doc.root.declared_size, 1)
        self.assertEqual(doc.root.values['test'], QJsonString('yes'))

    def test_out_of_line_number(self):
        doc = parse(NUMBER_DOC)

        self.assertEqual(doc.root, QJsonArray((QJsonNumber(10.1),)))

    def test_latin_string(self):
        doc = parse(LATIN_STRING_DOC)

        self.assertEqual(doc.root, QJsonArray((QJsonString('ö'),)))

    def test_bool(self):
        doc = parse(BOOL_DOC)

        self.assertEqual(doc.root, QJsonArray((QJsonBool(True),)))

    def test_nested_object(self):
        doc = parse(NESTED_OBJECT_DOC)

        self.assertIsInstance(doc.root, QJsonArray)
        self.assertEqual(len(doc.root), 1)

        inner = doc.root[0]
        self.assertIsInstance(inner, QJsonObject)
        self.assertEqual(inner.declared_size, 1)
        self.assertEqual(inner['test'], QJsonString('yes'))

    def test_inline_number(self):
        doc = parse(INLINE_NUMBER_DOC)

        self.assertEqual(doc.root.to_python(), [10.0])

    def test_header_fields(self):
        doc = parse(BOOL_DOC)

        self.assertEqual(doc.magic, b'qbjs')
        self.assertEqual(doc.tag, 0x736a6271)
        self.assertEqual(doc.version, 1)
        self.assertEqual(doc.warnings, ())

    def test_deterministic(self):
        self.assertEqual(parse(NESTED_OBJECT_DOC), parse(NESTED_OBJECT_DOC))

    def test_accepts_bytearray(self):
        self.assertEqual(parse(bytearray(OBJECT_DOC)), parse(OBJECT_DOC))


class DocumentHeaderTest(unittest.TestCase):
    def test_wrong_magic(self):
        with self.assertRaises(QBJSWrongMagicError) as ctx:
            parse(b'x' + OBJECT_DOC[1:])

        self.assertEqual(ctx.exception.found_magic, b'xbjs')

    def test_wrong_magic_is_format_error(self):
        with self.assertRaises(QBJSFormatError):
            parse(document(array_of(), magic=b'QBJS'))

    def test_unsupported_version(self):
        for version in (0, 2, 0xffffffff):
            with self.subTest(version=version):
                with self.assertRaises(QBJSUnsupportedVersionError) as ctx:
                    parse(document(array_of(), version=version))

                self.assertEqual(ctx.exception.version, version)
                self.assertIsInstance(ctx.exception, QBJSFormatError)

    def test_empty(self):
        with self.assertRaises(QBJSTruncatedDataError):
            parse(b'')

    def test_short_magic(self):
        with self.assertRaises(QBJSTruncatedDataError):
            parse(b'qb')

    def test_missing_version(self):
        with self.assertRaises(QBJSTruncatedDataError):
            parse(b'qbjs\x01\x00')

    def test_missing_root(self):
        with self.assertRaises(QBJSTruncatedDataError):
            parse(b'qbjs\x01\x00\x00\x00')

    def test_partial_root_header(self):
        with self.assertRaises(QBJSTruncatedDataError) as ctx:
            parse(BOOL_DOC[:14])

        self.assertEqual(ctx.exception.meaning, 'container header')

    def test_text_input_rejected(self):
        with self.assertRaises(TypeError):
            parse(BOOL_DOC.decode('latin-1'))


class ParseFileTest(unittest.TestCase):
    def test_fileobj(self):
        doc = parse_file(io.BytesIO(OBJECT_DOC))

        self.assertEqual(doc.root.to_python(), {'test': 'yes'})

    def test_path(self):
        fd, path = tempfile.mkstemp(suffix='.qbjs')
        try:
            with os.fdopen(fd, 'wb') as f:
                f.write(document(array_of(descriptor(QBJSValueType.BOOL, 1))))

            self.assertEqual(parse_file(path).root.to_python(), [True])
        finally:
            os.unlink(path)

    def test_text_fileobj_rejected(self):
        with self.assertRaises(TypeError):
            parse_file(io.StringIO('qbjs'))


if __name__ == '__main__':
    unittest.main()
