import logging
import os
from io import BytesIO

from . import (
    EngineError,
    ExcessiveInputError,
    InvalidStateError,
    ReaderClosedError,
    ShortBufferError,
    UnexpectedEndOfStreamError,
)
from .engine import Status, get_engine

logger = logging.getLogger(__name__)

# Large enough to avoid excessive engine round-trips, small enough not to waste memory.
READ_BUFFER_SIZE = 32 * 1024

_CHUNK_SIZE = 1 << 16


class _DictionaryPin:
    """Holds a buffer export on the dictionary so its memory can't move or resize."""

    def __init__(self, dictionary):
        self.view = memoryview(dictionary).cast("B")
        if not len(self.view):
            self.view.release()
            raise ValueError("dictionary must not be empty.")

    def release(self):
        self.view.release()


class Reader:
    """Decompresses a file or stream of compressed data on demand.

    Can be used as a context manager to automatically handle file
    opening and closing:

    .. code-block:: python

        with sluice.Reader("payload.zz") as f:
            decompressed_data = f.read()

    A :class:`Reader` is not safe to share between threads.
    """

    def __init__(self, f, *, dictionary=None, engine=None, buffer_size: int = READ_BUFFER_SIZE):
        """
        Parameters
        ----------
        f: Union[file, str]
            File-like object to read compressed bytes from.
        dictionary: Optional[bytes-like]
            Raw dictionary the stream was compressed with.
            Must stay unmodified until the reader is closed; a ``bytearray``
            cannot be resized in the meantime.
        engine: Union[None, str, Callable[[], DecodeEngine]]
            Engine name (``"zlib"``, ``"zstd"``, ``"brotli"``) or factory. Defaults to ``"zlib"``.
        buffer_size: int
            Size of the read-ahead buffer for compressed data.
        """
        if buffer_size <= 0:
            raise ValueError("buffer_size must be positive.")

        if isinstance(f, (str, bytes, os.PathLike)):
            f = open(f, "rb")
            self._close_f_on_close = True
        else:
            self._close_f_on_close = False
        self.f = f

        self._engine = None
        self._pin = None
        try:
            self._engine = get_engine(engine)()
            if dictionary is not None:
                self._pin = _DictionaryPin(dictionary)
                self._engine.attach_dictionary(self._pin.view)
                logger.debug("Attached %d byte dictionary to %s engine.", len(self._pin.view), self._engine.name)
        except BaseException:
            self._release()
            raise

        self._buf = bytearray(buffer_size)
        self._buf_view = memoryview(self._buf)
        self._pending = self._buf_view[:0]
        logger.debug("Opened reader with %s engine and %d byte read buffer.", self._engine.name, buffer_size)

    @classmethod
    def _preloaded(cls, data, **kwargs):
        """Reader over an exhausted source with ``data`` already pending."""
        # Tiny but nonzero, so reads from the empty source report end-of-data.
        reader = cls(BytesIO(), buffer_size=4, **kwargs)
        reader._pending = memoryview(data).cast("B")
        return reader

    @property
    def closed(self) -> bool:
        return self._engine is None

    def readable(self) -> bool:
        return True

    def _fill(self) -> bool:
        """Top off the read-ahead buffer from the source. Returns ``False`` at end-of-data."""
        readinto = getattr(self.f, "readinto", None)
        if readinto is None:
            data = self.f.read(len(self._buf))
            count = len(data) if data else 0
            self._buf[:count] = data
        else:
            count = readinto(self._buf) or 0

        if not count:
            return False
        self._pending = self._buf_view[:count]
        return True

    def readinto(self, buf) -> int:
        """Decompresses data into provided buffer.

        Parameters
        ----------
        buf: bytearray
            Buffer to decode data into.

        Returns
        -------
        int
            Number of bytes decompressed into buffer.
            ``0`` for a non-empty buffer means the stream ended cleanly.

        Raises
        ------
        SluiceError
            On failure. The exception's ``written`` attribute holds the number
            of valid bytes already placed into ``buf``.
        """
        engine = self._engine
        if engine is None:
            raise ReaderClosedError("Reader is closed.")

        if not engine.has_buffered_output() and not self._pending:
            if not self._fill():
                if engine.is_finished():
                    return 0
                raise UnexpectedEndOfStreamError("Compressed stream is truncated.")

        with memoryview(buf) as view, view.cast("B") as out:
            if not len(out):
                return 0
            return self._decode_into(engine, out)

    def _decode_into(self, engine, out):
        while True:
            written, consumed, status = engine.decompress_step(out, self._pending)
            self._pending = self._pending[consumed:]

            if status is Status.DONE:
                if self._pending:
                    raise ExcessiveInputError("Excessive input after end of compressed stream.", written=written)
                # A bare 0 reads as end-of-stream, so first make sure nothing trails the stream.
                if written or not self._fill():
                    return written
                continue
            elif status is Status.ERROR:
                code, message = engine.error()
                raise EngineError(code, message, written=written)
            elif status is Status.NEEDS_MORE_OUTPUT:
                if not written:
                    raise ShortBufferError(f"Buffer of {len(out)} bytes is too small for decoded output.")
                return written

            # Status.NEEDS_MORE_INPUT
            if self._pending:
                raise InvalidStateError("Engine requested input while input was pending.", written=written)

            # Reading the source may block; don't block if we have data to return.
            if written:
                return written

            if not self._fill():
                raise UnexpectedEndOfStreamError("Compressed stream is truncated.")

    def read(self, size: int = -1) -> bytes:
        """Decompresses data to bytes.

        Parameters
        ----------
        size: int
            Maximum number of bytes to return.
            If a negative value is provided, all data will be returned.
            Defaults to ``-1``.

        Returns
        -------
        bytes
            Decompressed data. Empty once the stream has ended.
        """
        if size < 0:
            return self.readall()

        if self._engine is None:
            raise ReaderClosedError("Reader is closed.")
        if size == 0:
            return b""

        buf = bytearray(size)
        written = self.readinto(buf)
        return bytes(buf[:written])

    def readall(self) -> bytes:
        """Decompresses all remaining data."""
        out = bytearray()
        buf = bytearray(_CHUNK_SIZE)
        while True:
            written = self.readinto(buf)
            if not written:
                break
            out += buf[:written]
        return bytes(out)

    def _release(self):
        if self._engine is not None:
            self._engine.destroy()
            self._engine = None
        # Only after the engine is gone; it may have retained the dictionary memory.
        if self._pin is not None:
            self._pin.release()
            self._pin = None
        if self._close_f_on_close:
            self.f.close()

    def close(self):
        """Frees the engine and closes the input file or stream, if sluice opened it.

        Undecoded output still held by the engine is discarded.
        """
        if self._engine is None:
            raise ReaderClosedError("Reader is already closed.")
        name = self._engine.name
        self._pending = b""
        self._release()
        logger.debug("Closed reader with %s engine.", name)

    def __enter__(self):
        """Use :class:`Reader` as a context manager.

        .. code-block:: python

           with sluice.Reader("payload.zz") as f:
               decompressed_data = f.read()
        """
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        """Calls :meth:`~Reader.close` on contextmanager exit, unless already closed."""
        if not self.closed:
            self.close()


class TextReader(Reader):
    """Decompresses a file or stream of compressed data into text."""

    def read(self, size: int = -1) -> str:
        """Decompresses data to text.

        Parameters
        ----------
        size: int
            Maximum number of bytes to return.
            If a negative value is provided, all data will be returned.
            Defaults to ``-1``.

        Returns
        -------
        str
            Decompressed text.
        """
        return super().read(size).decode()


def decompress(data, *, dictionary=None, engine=None) -> bytes:
    """Single-call to decompress data.

    Parameters
    ----------
    data: bytes
        Compressed data to decompress.
    dictionary: Optional[bytes-like]
        Raw dictionary the data was compressed with.
    engine: Union[None, str, Callable[[], DecodeEngine]]
        Engine name or factory. Defaults to ``"zlib"``.

    Returns
    -------
    bytes
        Decompressed data.
    """
    with Reader._preloaded(data, dictionary=dictionary, engine=engine) as reader:
        return reader.readall()


def decompress_with_dictionary(data, dictionary, *, engine=None) -> bytes:
    """Single-call to decompress data compressed with a raw ``dictionary``."""
    if dictionary is None:
        raise TypeError("dictionary is required.")
    return decompress(data, dictionary=dictionary, engine=engine)
