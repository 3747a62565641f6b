"""Decode engine contract and the shared step logic for native decompressors.

An engine is a stateful unit that decodes a bounded input slice into a bounded
output slice per call and reports why it stopped.
"""
import logging
from enum import Enum
from typing import Callable, Dict, NamedTuple, Optional, Tuple, Union

logger = logging.getLogger(__name__)

DEFAULT_ENGINE = "zlib"


class Status(Enum):
    DONE = "done"
    NEEDS_MORE_INPUT = "needs_more_input"
    NEEDS_MORE_OUTPUT = "needs_more_output"
    ERROR = "error"


class StepResult(NamedTuple):
    written: int
    consumed: int
    status: Status


class DecodeEngine:
    """Abstract decode engine.

    Lifecycle: created, optionally :meth:`attach_dictionary` once before the first
    :meth:`decompress_step`, stepped until ``DONE`` or ``ERROR``, then :meth:`destroy`.
    """

    name = "abstract"

    def attach_dictionary(self, dictionary: memoryview) -> None:
        """Attach a raw dictionary.

        The engine may retain ``dictionary`` until :meth:`destroy`.

        Raises
        ------
        DictionaryError
            The engine refused the dictionary.
        """
        raise NotImplementedError

    def decompress_step(self, out: memoryview, data: memoryview) -> StepResult:
        """Decode as much of ``data`` into ``out`` as possible."""
        raise NotImplementedError

    def has_buffered_output(self) -> bool:
        raise NotImplementedError

    def is_finished(self) -> bool:
        raise NotImplementedError

    def error(self) -> Tuple[Optional[int], str]:
        """Code and message of the failure behind the last ``ERROR`` status."""
        raise NotImplementedError

    def destroy(self) -> None:
        raise NotImplementedError


class BufferedEngine(DecodeEngine):
    """Step logic shared by engines wrapping a chunk-producing native decompressor.

    Subclasses implement :meth:`_process`. Output that does not fit the caller's
    buffer is kept in an overflow buffer and handed out by later steps.
    """

    fault_types: Tuple[type, ...] = ()

    def __init__(self):
        self._overflow = bytearray()
        self._finished = False
        self._fault: Optional[Tuple[Optional[int], str]] = None
        self._destroyed = False

    def _process(self, data: memoryview, max_length: int) -> Tuple[bytes, int, bool]:
        """Feed ``data`` to the native decompressor.

        Parameters
        ----------
        data: memoryview
            Undecoded input; may be empty to drain internally held output.
        max_length: int
            Preferred upper bound on returned output. Always positive.
            Engines unable to bound their output may return more.

        Returns
        -------
        Tuple[bytes, int, bool]
            Decoded chunk, number of input bytes consumed and whether the end
            of the compressed stream was reached.
        """
        raise NotImplementedError

    def _has_internal_output(self) -> bool:
        """Whether the native decompressor may produce output without more input."""
        return False

    def _fault_from(self, exc) -> Tuple[Optional[int], str]:
        return None, str(exc)

    def _drain(self, out, offset):
        size = min(len(out) - offset, len(self._overflow))
        if size:
            out[offset : offset + size] = self._overflow[:size]
            del self._overflow[:size]
        return size

    def _emit(self, out, offset, chunk):
        size = min(len(out) - offset, len(chunk))
        out[offset : offset + size] = chunk[:size]
        if size < len(chunk):
            self._overflow += chunk[size:]
        return size

    def decompress_step(self, out: memoryview, data: memoryview) -> StepResult:
        if self._destroyed:
            raise RuntimeError("Engine used after destroy().")
        if self._fault is not None:
            return StepResult(0, 0, Status.ERROR)

        written = self._drain(out, 0)
        consumed = 0
        while True:
            if self._overflow:
                return StepResult(written, consumed, Status.NEEDS_MORE_OUTPUT)
            if self._finished:
                return StepResult(written, consumed, Status.DONE)
            if consumed == len(data) and not self._has_internal_output():
                return StepResult(written, consumed, Status.NEEDS_MORE_INPUT)
            if written == len(out):
                return StepResult(written, consumed, Status.NEEDS_MORE_OUTPUT)

            try:
                chunk, used, self._finished = self._process(data[consumed:], len(out) - written)
            except self.fault_types as e:
                self._fault = self._fault_from(e)
                logger.debug("%s engine fault: %s", self.name, self._fault[1])
                return StepResult(written, consumed, Status.ERROR)

            consumed += used
            written += self._emit(out, written, chunk)

            if not used and not chunk and not self._finished:
                # Decompressor made no progress; let the caller decide what that means.
                return StepResult(written, consumed, Status.NEEDS_MORE_INPUT)

    def has_buffered_output(self) -> bool:
        return bool(self._overflow) or (not self._finished and self._has_internal_output())

    def is_finished(self) -> bool:
        return self._finished and not self._overflow

    def error(self) -> Tuple[Optional[int], str]:
        if self._fault is None:
            return None, "no error"
        return self._fault

    def destroy(self) -> None:
        self._destroyed = True
        self._overflow = bytearray()


EngineFactory = Callable[[], DecodeEngine]


def _create_zlib_engine():
    from .zlib_engine import ZlibEngine

    return ZlibEngine()


def _create_zstd_engine():
    from .zstd_engine import ZstdEngine

    return ZstdEngine()


def _create_brotli_engine():
    from .brotli_engine import BrotliEngine

    return BrotliEngine()


ENGINES: Dict[str, EngineFactory] = {
    "zlib": _create_zlib_engine,
    "zstd": _create_zstd_engine,
    "brotli": _create_brotli_engine,
}


def register_engine(name: str, factory: EngineFactory) -> None:
    """Make ``factory`` available under ``name`` for :func:`get_engine`."""
    ENGINES[name.lower()] = factory


def get_engine(engine: Union[None, str, EngineFactory] = None) -> EngineFactory:
    """Resolve an engine name or factory into a factory.

    Parameters
    ----------
    engine: Union[None, str, Callable[[], DecodeEngine]]
        Registered engine name, a factory (e.g. a :class:`DecodeEngine` subclass),
        or ``None`` for :data:`DEFAULT_ENGINE`.

    Returns
    -------
    Callable[[], DecodeEngine]
        Callable creating a fresh engine instance.
    """
    if engine is None:
        engine = DEFAULT_ENGINE

    if not isinstance(engine, str):
        if isinstance(engine, DecodeEngine) or not callable(engine):
            raise TypeError("engine must be a name or a factory creating a fresh DecodeEngine.")
        return engine

    try:
        return ENGINES[engine.lower()]
    except KeyError:
        raise ValueError(f"Unknown engine: {engine}. Valid options are {', '.join(sorted(ENGINES))}") from None
