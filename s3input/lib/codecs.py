"""Record codecs.

A codec turns an object's (decompressed) bytes into discrete records.
Decoding is lazy and one-shot: the returned iterator is consumed once,
in order.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, Iterator

from s3input.lib.errors import ConfigurationError

logger = logging.getLogger(__name__)

__all__ = ["Record", "Codec", "LineCodec", "JsonLinesCodec", "get_codec"]

Record = Dict[str, Any]


class Codec(ABC):
    """Turns raw bytes into records."""

    name: str = ""

    @abstractmethod
    def decode(self, data: bytes) -> Iterable[Record]:
        """Return the records contained in data, in order.

        Any iterable works; generators keep large objects lazy.

        Raises:
            ValueError: If the content is malformed
        """


class LineCodec(Codec):
    """One record per line: ``{"message": <line without terminator>}``.

    A trailing newline does not produce an empty final record.
    """

    name = "line"

    def __init__(self, charset: str = "utf-8") -> None:
        self.charset = charset

    def decode(self, data: bytes) -> Iterator[Record]:
        text = data.decode(self.charset)
        for line in text.splitlines():
            yield {"message": line}


class JsonLinesCodec(Codec):
    """One JSON document per non-blank line.

    Objects are emitted as-is; other JSON values are wrapped as
    ``{"message": value}``.
    """

    name = "json_lines"

    def __init__(self, charset: str = "utf-8") -> None:
        self.charset = charset

    def decode(self, data: bytes) -> Iterator[Record]:
        text = data.decode(self.charset)
        for lineno, line in enumerate(text.splitlines(), start=1):
            if not line.strip():
                continue
            try:
                value = json.loads(line)
            except json.JSONDecodeError as e:
                raise ValueError(f"line {lineno}: {e}") from e
            yield value if isinstance(value, dict) else {"message": value}


def get_codec(name: str, charset: str = "utf-8") -> Codec:
    """Build a codec by name ("line" or "json_lines")."""
    if name == LineCodec.name:
        return LineCodec(charset)
    elif name == JsonLinesCodec.name:
        return JsonLinesCodec(charset)
    raise ConfigurationError(f"Unknown codec '{name}'", field="codec", value=name)
