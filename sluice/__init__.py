# Don't manually change, let poetry-dynamic-versioning-plugin handle it.
__version__ = "0.0.0"


class SluiceError(Exception):
    """Base class for all decoding failures.

    Attributes
    ----------
    written: int
        Number of decoded bytes placed into the caller's buffer before the failure.
        These bytes are valid and may be consumed before halting.
    """

    def __init__(self, *args, written=0):
        super().__init__(*args)
        self.written = written


class ReaderClosedError(SluiceError, ValueError):
    """Operation attempted on a closed :class:`Reader`."""


class UnexpectedEndOfStreamError(SluiceError, EOFError):
    """Source ran out of data before the compressed stream was complete."""


class ExcessiveInputError(SluiceError):
    """Compressed stream is followed by trailing bytes."""


class ShortBufferError(SluiceError):
    """Provided buffer is too small to hold any decoded output."""


class InvalidStateError(SluiceError):
    """Engine asked for more input while undecoded input remained."""


class EngineError(SluiceError):
    """Engine reported corrupt or undecodable data.

    Attributes
    ----------
    code: Optional[int]
        Engine-native error code, if the engine exposes one.
    message: str
        Engine-native description of the failure.
    """

    def __init__(self, code, message, *, written=0):
        super().__init__(message, written=written)
        self.code = code
        self.message = message

    def __str__(self):
        if self.code is None:
            return self.message
        return f"{self.message} (code {self.code})"


class DictionaryError(EngineError):
    """Engine refused to attach the provided dictionary."""


from .engine import DEFAULT_ENGINE, ENGINES, DecodeEngine, StepResult, Status, get_engine, register_engine
from .reader import READ_BUFFER_SIZE, Reader, TextReader, decompress, decompress_with_dictionary


def open(f, mode="rb", **kwargs):
    if "w" in mode or "a" in mode or "x" in mode or "+" in mode:
        raise ValueError(f"Unsupported mode {mode!r}: sluice only decompresses.")

    if "r" in mode:
        return Reader(f, **kwargs) if "b" in mode else TextReader(f, **kwargs)
    else:
        raise ValueError(f"Invalid mode {mode!r}.")
