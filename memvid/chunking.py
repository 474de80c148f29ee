"""Text chunking: split documents into overlapping segments for QR encoding."""

from __future__ import annotations

import enum
import json
import re
from dataclasses import asdict, dataclass, field
from typing import Any, Optional

_SENTENCE_SPLIT = re.compile(r"[.!?]+\s+")
_PARAGRAPH_SPLIT = re.compile(r"\n\s*\n")
_WHITESPACE = re.compile(r"\s+")


@dataclass
class ChunkMetadata:
    """A chunk of text together with where it came from."""

    id: int
    text: str
    source: Optional[str] = None
    page: Optional[int] = None
    offset: int = 0
    length: int = 0
    frame: Optional[int] = None
    embedding: Optional[list[float]] = None

    def to_dict(self) -> dict[str, Any]:
        """Return the chunk as a plain dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ChunkMetadata":
        """Build a chunk from a dictionary as produced by :meth:`to_dict`."""
        embedding = data.get("embedding")
        return cls(
            id=int(data["id"]),
            text=data["text"],
            source=data.get("source"),
            page=data.get("page"),
            offset=int(data["offset"]),
            length=int(data["length"]),
            frame=data.get("frame"),
            embedding=None if embedding is None else [float(v) for v in embedding],
        )

    def to_json(self) -> str:
        """Serialize the chunk to a JSON string."""
        return json.dumps(self.to_dict())

    @classmethod
    def from_json(cls, text: str) -> "ChunkMetadata":
        """Parse a chunk from a JSON string."""
        return cls.from_dict(json.loads(text))


class ChunkingStrategy(enum.Enum):
    """How text is split into chunks."""

    CHARACTER = "character"
    SENTENCE = "sentence"
    PARAGRAPH = "paragraph"
    TOKEN = "token"


@dataclass
class ChunkingConfig:
    """Size limits for chunking."""

    chunk_size: int = 1024
    overlap: int = 32
    min_chunk_size: int = 100
    max_chunk_size: int = 4096


def _preprocess(text: str) -> str:
    lines = (line.strip() for line in text.split("\n"))
    joined = " ".join(line for line in lines if line)
    return _WHITESPACE.sub(" ", joined)


@dataclass
class TextChunker:
    """Splits documents into chunks according to a strategy."""

    config: ChunkingConfig = field(default_factory=ChunkingConfig)
    strategy: ChunkingStrategy = ChunkingStrategy.CHARACTER

    def __post_init__(self) -> None:
        if self.config.chunk_size <= 0:
            raise ValueError("chunk_size must be positive")

    @classmethod
    def with_default_config(cls) -> "TextChunker":
        """Create a character chunker with the default configuration."""
        return cls(ChunkingConfig(), ChunkingStrategy.CHARACTER)

    def chunk_text(self, text: str, source: Optional[str] = None) -> list[ChunkMetadata]:
        """Split ``text`` into chunks, tagging each with ``source``."""
        text = _preprocess(text)
        handlers = {
            ChunkingStrategy.CHARACTER: self._by_characters,
            ChunkingStrategy.SENTENCE: self._by_sentences,
            ChunkingStrategy.PARAGRAPH: self._by_paragraphs,
            ChunkingStrategy.TOKEN: self._by_tokens,
        }
        return handlers[self.strategy](text, source)

    def _by_characters(self, text: str, source: Optional[str]) -> list[ChunkMetadata]:
        cfg = self.config
        if len(text) <= cfg.chunk_size:
            return [ChunkMetadata(id=0, text=text, source=source, offset=0, length=len(text))]

        chunks: list[ChunkMetadata] = []
        step = max(cfg.chunk_size - cfg.overlap, 0)
        start = 0
        while start < len(text):
            end = min(start + cfg.chunk_size, len(text))
            piece = text[start:end]
            if len(piece) >= cfg.min_chunk_size or end == len(text):
                chunks.append(
                    ChunkMetadata(
                        id=len(chunks), text=piece, source=source,
                        offset=start, length=len(piece),
                    )
                )
            previous = start
            start += step
            last = chunks[-1] if chunks else None
            if start <= (last.offset if last else 0):
                start = last.offset + last.length if last else 0
            if start <= previous:
                start = end
        return chunks

    def _by_segments(
        self, segments: list[str], separator: str, source: Optional[str]
    ) -> list[ChunkMetadata]:
        cfg = self.config
        chunks: list[ChunkMetadata] = []
        current = ""
        current_offset = 0
        segment_offset = 0

        for raw in segments:
            segment = raw.strip()
            if not segment:
                continue
            addition = segment if not current else separator + segment
            if current and len(current) + len(addition) > cfg.chunk_size:
                if len(current) >= cfg.min_chunk_size:
                    chunks.append(
                        ChunkMetadata(
                            id=len(chunks), text=current, source=source,
                            offset=current_offset, length=len(current),
                        )
                    )
                current = segment
                current_offset = segment_offset
            else:
                current += addition
            segment_offset += len(segment) + len(separator)

        if current and len(current) >= cfg.min_chunk_size:
            chunks.append(
                ChunkMetadata(
                    id=len(chunks), text=current, source=source,
                    offset=current_offset, length=len(current),
                )
            )
        return chunks

    def _by_sentences(self, text: str, source: Optional[str]) -> list[ChunkMetadata]:
        return self._by_segments(_SENTENCE_SPLIT.split(text), " ", source)

    def _by_paragraphs(self, text: str, source: Optional[str]) -> list[ChunkMetadata]:
        return self._by_segments(_PARAGRAPH_SPLIT.split(text), "\n\n", source)

    def _by_tokens(self, text: str, source: Optional[str]) -> list[ChunkMetadata]:
        cfg = self.config
        chunks: list[ChunkMetadata] = []
        current = ""
        current_offset = 0
        token_offset = 0

        for token in text.split():
            addition = token if not current else " " + token
            if current and len(current) + len(addition) > cfg.chunk_size:
                if len(current) >= cfg.min_chunk_size:
                    chunks.append(
                        ChunkMetadata(
                            id=len(chunks), text=current, source=source,
                            offset=current_offset, length=len(current),
                        )
                    )
                overlap_text = ""
                if cfg.overlap > 0:
                    current_tokens = current.split()
                    count = min(cfg.overlap // 10, len(current_tokens))
                    if count > 0:
                        overlap_text = " ".join(current_tokens[-count:])
                current = f"{overlap_text} {token}" if overlap_text else token
                current_offset = max(token_offset - len(overlap_text), 0)
            else:
                current += addition
            token_offset += len(token) + 1

        if current and len(current) >= cfg.min_chunk_size:
            chunks.append(
                ChunkMetadata(
                    id=len(chunks), text=current, source=source,
                    offset=current_offset, length=token_offset - current_offset,
                )
            )
        return chunks