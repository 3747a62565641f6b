import logging
import sys
from pathlib import Path
from typing import Annotated, Optional

from cyclopts import App, Parameter, validators

import sluice
from sluice.reader import _CHUNK_SIZE

app = App(help="Decompress zlib, zstd or brotli streams without loading them into memory.")


def copy(reader: sluice.Reader, dst) -> int:
    """Stream decoded bytes from ``reader`` into ``dst``; returns the number copied."""
    buf = bytearray(_CHUNK_SIZE)
    total = 0
    while True:
        try:
            n = reader.readinto(buf)
        except sluice.SluiceError as e:
            # Whatever decoded cleanly before the failure is still delivered.
            dst.write(buf[: e.written])
            raise
        if not n:
            return total
        dst.write(buf[:n])
        total += n


@app.command()
def decompress(
    input_: Annotated[Optional[Path], Parameter(name=["--input", "-i"])] = None,
    output: Annotated[Optional[Path], Parameter(name=["--output", "-o"])] = None,
    *,
    engine: Annotated[Optional[str], Parameter(name=["--engine", "-e"])] = None,
    dictionary: Annotated[Optional[Path], Parameter(name=["--dictionary", "-d"])] = None,
    buffer_size: Annotated[
        int,
        Parameter(validator=validators.Number(gt=0)),
    ] = sluice.READ_BUFFER_SIZE,
    verbose: bool = False,
):
    """Decompress an input file or stream.

    Parameters
    ----------
    input_: Optional[Path]
        Input file to decompress. Defaults to stdin.
    output: Optional[Path]
        Output decompressed file. Defaults to stdout.
    engine: Optional[str]
        Decode engine, "zlib", "zstd" or "brotli". Defaults to "zlib".
    dictionary: Optional[Path]
        File holding the raw dictionary the input was compressed with.
    buffer_size: int
        Size of the compressed read-ahead buffer in bytes.
    verbose: bool
        Log reader lifecycle events to stderr.
    """
    if verbose:
        logging.basicConfig(level=logging.DEBUG, stream=sys.stderr)

    factory = sluice.get_engine(engine)
    dictionary_bytes = None if dictionary is None else dictionary.read_bytes()
    src = sys.stdin.buffer if input_ is None else input_

    with sluice.Reader(src, dictionary=dictionary_bytes, engine=factory, buffer_size=buffer_size) as reader:
        if output is None:
            copy(reader, sys.stdout.buffer)
            sys.stdout.buffer.flush()
        else:
            with output.open("wb") as dst:
                copy(reader, dst)


def run_app():
    try:
        app()
    except (sluice.SluiceError, ValueError) as e:
        print(f"sluice: {e}", file=sys.stderr)
        sys.exit(1)
