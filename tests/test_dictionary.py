import unittest
import zlib
from io import BytesIO

import pyzstd

from sluice import (
    DictionaryError,
    EngineError,
    Reader,
    decompress,
    decompress_with_dictionary,
)
from sluice.engine import DecodeEngine, Status, StepResult
from sluice.zlib_engine import ZlibEngine

dictionary = b"GET /api/v1/users HTTP/1.1\r\nHost: example.com\r\nAccept: application/json\r\n"
other_dictionary = b"POST /upload HTTP/1.0\r\nContent-Type: multipart/form-data\r\n"
message = b"GET /api/v1/users HTTP/1.1\r\nHost: example.com\r\nAccept: application/json\r\nUser-Agent: sluice\r\n\r\n"


def zlib_encode(data, zdict):
    c = zlib.compressobj(zdict=zdict)
    return c.compress(data) + c.flush()


def zstd_encode(data, raw_dictionary):
    # Checksummed, so decoding with the wrong dictionary is detected.
    option = {pyzstd.CParameter.checksumFlag: 1}
    return pyzstd.compress(data, option, pyzstd.ZstdDict(raw_dictionary, is_raw=True))


class RecordingEngine(DecodeEngine):
    """Checks the dictionary is still pinned while the engine is destroyed."""

    name = "recording"

    def __init__(self, attach_error=None):
        self.attach_error = attach_error
        self.dictionary = None
        self.dictionary_alive_at_destroy = None

    def attach_dictionary(self, dictionary):
        if self.attach_error is not None:
            raise self.attach_error
        self.dictionary = dictionary

    def decompress_step(self, out, data):
        return StepResult(0, len(data), Status.DONE)

    def has_buffered_output(self):
        return False

    def is_finished(self):
        return True

    def error(self):
        return None, "no error"

    def destroy(self):
        try:
            self.dictionary_alive_at_destroy = self.dictionary is not None and bytes(self.dictionary) == dictionary
        except ValueError:  # Released memoryview.
            self.dictionary_alive_at_destroy = False


class TestZlibDictionary(unittest.TestCase):
    def test_matching_dictionary(self):
        compressed = zlib_encode(message, dictionary)
        self.assertEqual(decompress(compressed, dictionary=dictionary), message)
        self.assertEqual(decompress_with_dictionary(compressed, dictionary), message)

    def test_missing_dictionary(self):
        compressed = zlib_encode(message, dictionary)
        with self.assertRaises(EngineError) as cm:
            decompress(compressed)
        self.assertEqual(cm.exception.code, 2)

    def test_mismatched_dictionary(self):
        compressed = zlib_encode(message, dictionary)
        with self.assertRaises(EngineError):
            decompress(compressed, dictionary=other_dictionary)

    def test_dictionary_helps(self):
        self.assertLess(len(zlib_encode(message, dictionary)), len(zlib.compress(message)))

    def test_streaming_with_dictionary(self):
        compressed = zlib_encode(message * 50, dictionary)
        with Reader(BytesIO(compressed), dictionary=bytearray(dictionary), buffer_size=16) as reader:
            self.assertEqual(reader.read(), message * 50)

    def test_raw_deflate(self):
        c = zlib.compressobj(wbits=-15, zdict=dictionary)
        compressed = c.compress(message) + c.flush()
        actual = decompress(compressed, dictionary=dictionary, engine=lambda: ZlibEngine(wbits=-15))
        self.assertEqual(actual, message)

    def test_gzip_rejects_dictionary(self):
        with self.assertRaises(DictionaryError):
            Reader(BytesIO(), dictionary=dictionary, engine=lambda: ZlibEngine(wbits=31))


class TestZstdDictionary(unittest.TestCase):
    def test_matching_dictionary(self):
        compressed = zstd_encode(message, dictionary)
        self.assertEqual(decompress(compressed, dictionary=dictionary, engine="zstd"), message)

    def test_missing_dictionary(self):
        compressed = zstd_encode(message, dictionary)
        with self.assertRaises(EngineError):
            decompress(compressed, engine="zstd")

    def test_mismatched_dictionary(self):
        compressed = zstd_encode(message, dictionary)
        with self.assertRaises(EngineError):
            decompress(compressed, dictionary=other_dictionary, engine="zstd")

    def test_mismatched_dictionary_streaming(self):
        compressed = zstd_encode(message * 10, dictionary)
        with Reader(BytesIO(compressed), dictionary=other_dictionary, engine="zstd", buffer_size=7) as reader:
            with self.assertRaises(EngineError):
                reader.read()

    def test_one_byte_reads(self):
        compressed = zstd_encode(message * 10, dictionary)
        with Reader(BytesIO(compressed), dictionary=dictionary, engine="zstd") as reader:
            out = bytearray()
            while True:
                chunk = reader.read(1)
                if not chunk:
                    break
                out += chunk
        self.assertEqual(out, message * 10)


class TestBrotliDictionary(unittest.TestCase):
    def test_dictionary_refused(self):
        buf = bytearray(dictionary)
        with self.assertRaises(DictionaryError):
            Reader(BytesIO(), dictionary=buf, engine="brotli")
        buf.extend(b"more")  # Released.


class TestDictionaryPinning(unittest.TestCase):
    def test_empty_dictionary(self):
        for engine in ("zlib", "zstd"):
            with self.subTest(engine=engine), self.assertRaises(ValueError):
                Reader(BytesIO(), dictionary=b"", engine=engine)

    def test_decompress_with_dictionary_requires_dictionary(self):
        with self.assertRaises(TypeError):
            decompress_with_dictionary(zlib.compress(b""), None)

    def test_bytearray_pinned_while_open(self):
        buf = bytearray(dictionary)
        reader = Reader(BytesIO(zlib_encode(message, dictionary)), dictionary=buf)
        with self.assertRaises(BufferError):
            buf.extend(b"more")
        self.assertEqual(reader.read(), message)
        reader.close()

        buf.extend(b"more")  # Released.
        self.assertEqual(len(buf), len(dictionary) + 4)

    def test_released_after_engine_destroyed(self):
        engine = RecordingEngine()
        reader = Reader(BytesIO(), dictionary=bytearray(dictionary), engine=lambda: engine)
        self.assertEqual(bytes(engine.dictionary), dictionary)
        reader.close()
        self.assertTrue(engine.dictionary_alive_at_destroy)

    def test_attach_failure_propagates(self):
        buf = bytearray(dictionary)
        engine = RecordingEngine(attach_error=DictionaryError(-1, "refused"))
        with self.assertRaises(DictionaryError) as cm:
            Reader(BytesIO(), dictionary=buf, engine=lambda: engine)
        self.assertEqual(cm.exception.code, -1)
        # Engine destroyed and pin released.
        self.assertIs(engine.dictionary_alive_at_destroy, False)
        buf.extend(b"more")
