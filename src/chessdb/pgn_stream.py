"""Decode uploaded PGN archives into a lazy sequence of single-game texts.

The iterators here are pull-based and single-pass: each step reads at most
one more chunk from the underlying byte source, and none of them can be
restarted once consumed. Only the game currently being assembled is held in
memory.
"""

from __future__ import annotations

import codecs
from collections.abc import Iterable, Iterator
from dataclasses import dataclass

import zstandard

ZSTD_SUFFIX = ".zst"


@dataclass(frozen=True, slots=True)
class PgnGameText:
    """One game's PGN text and its 1-based position in the archive."""

    offset: int
    pgn_text: str


def is_zstd_key(object_key: str) -> bool:
    """Return True when a storage key names a zstd-compressed archive."""
    return object_key.lower().endswith(ZSTD_SUFFIX)


def iter_decoded_bytes(chunks: Iterable[bytes], compressed: bool) -> Iterator[bytes]:
    """Yield decompressed byte chunks, passing plain input straight through."""
    if not compressed:
        for chunk in chunks:
            if chunk:
                yield bytes(chunk)
        return
    yield from _iter_zstd_frames(chunks)


def _iter_zstd_frames(chunks: Iterable[bytes]) -> Iterator[bytes]:
    dctx = zstandard.ZstdDecompressor()
    decompressor = dctx.decompressobj()
    frame_started = False
    for chunk in chunks:
        data = bytes(chunk)
        while data:
            frame_started = True
            output = decompressor.decompress(data)
            if output:
                yield output
            if not decompressor.eof:
                break
            # Concatenated frames: restart on whatever followed the frame end.
            data = decompressor.unused_data
            decompressor = dctx.decompressobj()
            frame_started = False
    tail = decompressor.flush()
    if tail:
        yield tail
    if frame_started and not decompressor.eof:
        raise zstandard.ZstdError("zstd stream ended inside a frame")


def iter_text_lines(byte_chunks: Iterable[bytes]) -> Iterator[str]:
    """Decode UTF-8 bytes into lines without the line terminator.

    Multi-byte characters split across chunk boundaries are carried over by the
    incremental decoder, which is flushed once the byte source is exhausted.
    A leading byte-order mark is dropped and ``\\r\\n`` endings are normalized.
    """
    decoder = codecs.getincrementaldecoder("utf-8-sig")(errors="replace")
    carry = ""
    for chunk in byte_chunks:
        carry += decoder.decode(chunk)
        *lines, carry = carry.split("\n")
        for line in lines:
            yield line.removesuffix("\r")
    carry += decoder.decode(b"", final=True)
    if carry:
        yield carry.removesuffix("\r")


def iter_pgn_games(lines: Iterable[str]) -> Iterator[PgnGameText]:
    """Group lines into game texts.

    A tag-pair line starts a new game only once the buffer already holds
    movetext, so blank lines between tag pairs never split a game.
    """
    buffer: list[str] = []
    has_moves = False
    offset = 0
    for line in lines:
        stripped = line.strip()
        is_tag = stripped.startswith("[")
        if is_tag and has_moves and buffer:
            text = "\n".join(buffer).strip()
            if text:
                offset += 1
                yield PgnGameText(offset=offset, pgn_text=text)
            buffer = [line]
            has_moves = False
            continue
        if stripped and not is_tag:
            has_moves = True
        buffer.append(line)
    text = "\n".join(buffer).strip()
    if text:
        offset += 1
        yield PgnGameText(offset=offset, pgn_text=text)


def iter_archive_games(chunks: Iterable[bytes], compressed: bool) -> Iterator[PgnGameText]:
    """Decode, split into lines and group into games in one lazy pipeline."""
    return iter_pgn_games(iter_text_lines(iter_decoded_bytes(chunks, compressed)))
