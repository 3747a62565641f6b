import brotli

from . import DictionaryError
from .engine import BufferedEngine


class BrotliEngine(BufferedEngine):
    """Brotli engine backed by :class:`brotli.Decompressor`.

    Output of each call is bounded with ``output_buffer_limit``. Once a call hits
    the limit the decompressor refuses new input until its backlog is drained.
    """

    name = "brotli"
    fault_types = (brotli.error,)

    def __init__(self):
        super().__init__()
        self._obj = None

    def attach_dictionary(self, dictionary: memoryview) -> None:
        raise DictionaryError(None, "the brotli binding does not support raw dictionaries")

    def _decompressor(self):
        if self._obj is None:
            self._obj = brotli.Decompressor()
        return self._obj

    def _surplus(self, data, chunk):
        if not data:
            raise brotli.error("excessive input after end of stream")
        # Report nothing consumed; the caller sees the leftover input.
        return chunk, 0, True

    def _process(self, data, max_length):
        obj = self._decompressor()
        feed = bytes(data) if obj.can_accept_more_data() else b""
        try:
            chunk = obj.process(feed, output_buffer_limit=max_length)
        except brotli.error:
            if not obj.is_finished():
                raise
            # Stream ended before the input did.
            return self._surplus(data, b"")

        finished = obj.is_finished()
        if finished and not obj.can_accept_more_data():
            return self._surplus(data, chunk)
        return chunk, len(feed), finished

    def _has_internal_output(self):
        return self._obj is not None and not self._obj.can_accept_more_data()

    def destroy(self):
        super().destroy()
        self._obj = None
