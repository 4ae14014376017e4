"""Incremental XML token stream built on expat."""

from __future__ import annotations

from collections.abc import AsyncIterable, AsyncIterator, Iterable, Iterator
from dataclasses import dataclass, field
from xml.parsers import expat

from .errors import QuickBaseParseError


@dataclass(slots=True, frozen=True)
class StartTag:
    name: str
    attrs: dict[str, str] = field(default_factory=dict)


@dataclass(slots=True, frozen=True)
class EndTag:
    name: str


@dataclass(slots=True, frozen=True)
class CharData:
    text: str


XmlToken = StartTag | EndTag | CharData


class XmlTokenizer:
    """Push bytes in, get start/end/character-data tokens out.

    Never holds more than the tokens produced by the last chunk. When a
    chunk is malformed, the tokens decoded before the fault stay available
    through :meth:`drain`.
    """

    def __init__(self) -> None:
        self._pending: list[XmlToken] = []
        self._closed = False
        parser = expat.ParserCreate()
        parser.buffer_text = True
        parser.StartElementHandler = self._on_start
        parser.EndElementHandler = self._on_end
        parser.CharacterDataHandler = self._on_chars
        self._parser = parser

    def _on_start(self, name: str, attrs: dict[str, str]) -> None:
        self._pending.append(StartTag(name, dict(attrs)))

    def _on_end(self, name: str) -> None:
        self._pending.append(EndTag(name))

    def _on_chars(self, text: str) -> None:
        self._pending.append(CharData(text))

    def drain(self) -> list[XmlToken]:
        tokens, self._pending = self._pending, []
        return tokens

    def feed(self, chunk: bytes) -> list[XmlToken]:
        if self._closed:
            raise QuickBaseParseError("tokenizer is already closed")
        try:
            self._parser.Parse(chunk, False)
        except expat.ExpatError as exc:
            raise QuickBaseParseError(f"malformed XML in response stream: {exc}") from exc
        return self.drain()

    def close(self) -> list[XmlToken]:
        if self._closed:
            return []
        self._closed = True
        try:
            self._parser.Parse(b"", True)
        except expat.ExpatError as exc:
            raise QuickBaseParseError(f"malformed XML in response stream: {exc}") from exc
        return self.drain()


def iter_tokens(chunks: Iterable[bytes]) -> Iterator[XmlToken]:
    tokenizer = XmlTokenizer()
    try:
        for chunk in chunks:
            yield from tokenizer.feed(chunk)
        yield from tokenizer.close()
    except QuickBaseParseError:
        yield from tokenizer.drain()
        raise


async def aiter_tokens(chunks: AsyncIterable[bytes]) -> AsyncIterator[XmlToken]:
    tokenizer = XmlTokenizer()
    try:
        async for chunk in chunks:
            for token in tokenizer.feed(chunk):
                yield token
        for token in tokenizer.close():
            yield token
    except QuickBaseParseError:
        for token in tokenizer.drain():
            yield token
        raise


__all__ = [
    "StartTag",
    "EndTag",
    "CharData",
    "XmlToken",
    "XmlTokenizer",
    "iter_tokens",
    "aiter_tokens",
]
