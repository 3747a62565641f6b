import pyzstd

from . import DictionaryError
from .engine import BufferedEngine


class ZstdEngine(BufferedEngine):
    """Zstandard engine backed by :class:`pyzstd.ZstdDecompressor`.

    Decodes a single frame. Output of each call is bounded by ``max_length``;
    input beyond that point is held inside the decompressor until drained.
    """

    name = "zstd"
    fault_types = (pyzstd.ZstdError,)

    def __init__(self, window_log_max: int = None):
        super().__init__()
        self.window_log_max = window_log_max
        self._zstd_dict = None
        self._obj = None

    def attach_dictionary(self, dictionary: memoryview) -> None:
        if self._obj is not None:
            raise DictionaryError(None, "dictionary must be attached before decoding starts")
        try:
            self._zstd_dict = pyzstd.ZstdDict(bytes(dictionary), is_raw=True)
        except pyzstd.ZstdError as e:
            raise DictionaryError(None, str(e)) from e

    def _decompressor(self):
        if self._obj is None:
            option = None
            if self.window_log_max is not None:
                option = {pyzstd.DParameter.windowLogMax: self.window_log_max}
            self._obj = pyzstd.ZstdDecompressor(zstd_dict=self._zstd_dict, option=option)
        return self._obj

    def _process(self, data, max_length):
        obj = self._decompressor()
        chunk = obj.decompress(data, max_length)
        if not obj.eof:
            return chunk, len(data), False

        used = len(data) - len(obj.unused_data)
        if used < 0:
            # Surplus was taken in by an earlier call that hit max_length.
            if not data:
                raise pyzstd.ZstdError("excessive input after end of frame")
            return chunk, 0, True
        return chunk, used, True

    def _has_internal_output(self):
        return self._obj is not None and not self._obj.needs_input

    def destroy(self):
        super().destroy()
        self._obj = None
        self._zstd_dict = None
