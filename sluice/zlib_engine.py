import re
import zlib

from . import DictionaryError
from .engine import BufferedEngine

_ERROR_CODE_RE = re.compile(r"Error (-?\d+)")


class ZlibEngine(BufferedEngine):
    """Deflate engine backed by :func:`zlib.decompressobj`.

    Output is bounded by ``max_length`` so at most one caller buffer worth of
    decoded data is ever held outside of zlib.
    """

    name = "zlib"
    fault_types = (zlib.error,)

    def __init__(self, wbits: int = zlib.MAX_WBITS):
        super().__init__()
        self.wbits = wbits
        self._zdict = None
        self._obj = None
        self._filled = False  # last call hit max_length; zlib may hold more output.

    def attach_dictionary(self, dictionary: memoryview) -> None:
        if self._obj is not None:
            raise DictionaryError(None, "dictionary must be attached before decoding starts")
        if self.wbits > zlib.MAX_WBITS:
            raise DictionaryError(None, f"wbits={self.wbits} selects gzip framing, which has no dictionary support")
        self._zdict = dictionary

    def _decompressobj(self):
        if self._obj is None:
            if self._zdict is None:
                self._obj = zlib.decompressobj(self.wbits)
            else:
                self._obj = zlib.decompressobj(self.wbits, zdict=self._zdict)
        return self._obj

    def _process(self, data, max_length):
        obj = self._decompressobj()
        chunk = obj.decompress(data, max_length)
        self._filled = len(chunk) == max_length
        used = len(data) - len(obj.unconsumed_tail) - len(obj.unused_data)
        return chunk, used, obj.eof

    def _has_internal_output(self):
        return self._filled

    def _fault_from(self, exc):
        message = str(exc)
        match = _ERROR_CODE_RE.search(message)
        return (int(match.group(1)) if match else None), message

    def destroy(self):
        super().destroy()
        self._obj = None
        self._zdict = None
