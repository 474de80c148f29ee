"""Text preprocessing and tokenization for embedding models."""

from __future__ import annotations

import hashlib
import json
import logging
import os
import re
import unicodedata
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Iterator, Optional, Sequence, Union

log = logging.getLogger(__name__)

CLS_TOKEN_ID = 101
SEP_TOKEN_ID = 102
PAD_TOKEN_ID = 0

_WHITESPACE_WORDS = re.compile(r"\w+|[^\w\s]+")
_DEFAULT_UNKNOWN_PIECE = "[UNK]"


class TextProcessingError(Exception):
    """Raised when a tokenizer cannot be loaded or used."""


@dataclass
class TextConfig:
    """Options for preprocessing and tokenizing text."""

    max_length: int = 384
    truncate: bool = True
    add_special_tokens: bool = True
    normalize_unicode: bool = True
    lowercase: bool = False


@dataclass
class TokenizedText:
    """Token ids and masks ready for model inference."""

    input_ids: list[int] = field(default_factory=list)
    attention_mask: list[int] = field(default_factory=list)
    token_type_ids: list[int] = field(default_factory=list)
    original_length: int = 0


def _is_punctuation(char: str) -> bool:
    code = ord(char)
    if 33 <= code <= 47 or 58 <= code <= 64 or 91 <= code <= 96 or 123 <= code <= 126:
        return True
    return unicodedata.category(char).startswith("P")


def _is_cjk(char: str) -> bool:
    code = ord(char)
    return (
        0x4E00 <= code <= 0x9FFF
        or 0x3400 <= code <= 0x4DBF
        or 0x20000 <= code <= 0x2A6DF
        or 0x2A700 <= code <= 0x2B73F
        or 0x2B740 <= code <= 0x2B81F
        or 0x2B820 <= code <= 0x2CEAF
        or 0xF900 <= code <= 0xFAFF
        or 0x2F800 <= code <= 0x2FA1F
    )


def _strip_accents(text: str) -> str:
    return "".join(c for c in unicodedata.normalize("NFD", text) if unicodedata.category(c) != "Mn")


def _clean_char(char: str) -> str:
    if char in "\t\n\r" or unicodedata.category(char) == "Zs":
        return " "
    if char == "\x00" or char == "\ufffd" or unicodedata.category(char) in ("Cc", "Cf"):
        return ""
    return char


def _bert_normalizer(spec: dict[str, Any]) -> Callable[[str], str]:
    clean_text = spec.get("clean_text", True)
    chinese = spec.get("handle_chinese_chars", True)
    lowercase = spec.get("lowercase", True)
    strip_accents = spec.get("strip_accents")
    if strip_accents is None:
        strip_accents = lowercase

    def normalize(text: str) -> str:
        if clean_text:
            text = "".join(_clean_char(c) for c in text)
        if chinese:
            text = "".join(f" {c} " if _is_cjk(c) else c for c in text)
        if strip_accents:
            text = _strip_accents(text)
        if lowercase:
            text = text.lower()
        return text

    return normalize


def _build_normalizer(spec: Optional[dict[str, Any]]) -> Callable[[str], str]:
    if spec is None:
        return lambda text: text
    kind = spec.get("type")
    simple: dict[str, Callable[[str], str]] = {
        "Lowercase": str.lower,
        "NFC": lambda t: unicodedata.normalize("NFC", t),
        "NFD": lambda t: unicodedata.normalize("NFD", t),
        "NFKC": lambda t: unicodedata.normalize("NFKC", t),
        "NFKD": lambda t: unicodedata.normalize("NFKD", t),
        "StripAccents": _strip_accents,
        "Strip": str.strip,
    }
    if kind in simple:
        return simple[kind]
    if kind == "BertNormalizer":
        return _bert_normalizer(spec)
    if kind == "Sequence":
        steps = [_build_normalizer(item) for item in spec.get("normalizers", [])]

        def run_all(text: str) -> str:
            for step in steps:
                text = step(text)
            return text

        return run_all
    raise TextProcessingError(f"Unsupported normalizer: {kind}")


def _bert_split(text: str) -> Iterator[str]:
    for word in text.split():
        piece: list[str] = []
        for char in word:
            if _is_punctuation(char):
                if piece:
                    yield "".join(piece)
                    piece = []
                yield char
            else:
                piece.append(char)
        if piece:
            yield "".join(piece)


def _build_pre_tokenizer(spec: Optional[dict[str, Any]]) -> Callable[[str], list[str]]:
    kind = None if spec is None else spec.get("type")
    if kind == "BertPreTokenizer":
        return lambda text: list(_bert_split(text))
    if kind == "Whitespace":
        return _WHITESPACE_WORDS.findall
    if kind in (None, "WhitespaceSplit"):
        return str.split
    raise TextProcessingError(f"Unsupported pre-tokenizer: {kind}")


_Specials = tuple[list[tuple[int, int]], list[tuple[int, int]]]


def _parse_post_processor(spec: Optional[dict[str, Any]]) -> _Specials:
    if spec is None:
        return [], []
    kind = spec.get("type")
    if kind in ("BertProcessing", "RobertaProcessing"):
        return [(int(spec["cls"][1]), 0)], [(int(spec["sep"][1]), 0)]
    if kind == "TemplateProcessing":
        specials = spec.get("special_tokens", {})
        prefix: list[tuple[int, int]] = []
        suffix: list[tuple[int, int]] = []
        target = prefix
        for item in spec.get("single", []):
            if "Sequence" in item:
                target = suffix
                continue
            special = item["SpecialToken"]
            type_id = int(special.get("type_id", 0))
            target.extend((int(i), type_id) for i in specials[special["id"]]["ids"])
        return prefix, suffix
    if kind == "Sequence":
        result: _Specials = ([], [])
        for processor in spec.get("processors", []):
            parsed = _parse_post_processor(processor)
            if parsed[0] or parsed[1]:
                result = parsed
        return result
    return [], []


class _WordPieceTokenizer:
    """A WordPiece tokenizer read from a ``tokenizer.json`` file."""

    def __init__(self, spec: dict[str, Any]) -> None:
        model = spec.get("model") or {}
        if model.get("type", "WordPiece") != "WordPiece":
            raise TextProcessingError(f"Unsupported tokenizer model: {model.get('type')}")
        self.vocab: dict[str, int] = {str(k): int(v) for k, v in model.get("vocab", {}).items()}
        unknown_piece = model.get("unk_token", _DEFAULT_UNKNOWN_PIECE)
        if unknown_piece not in self.vocab:
            raise TextProcessingError(f"Unknown token {unknown_piece!r} missing from vocabulary")
        self.unk_id = self.vocab[unknown_piece]
        self.prefix = model.get("continuing_subword_prefix", "##")
        self.max_chars = int(model.get("max_input_chars_per_word", 100))
        self.normalize = _build_normalizer(spec.get("normalizer"))
        self.pre_tokenize = _build_pre_tokenizer(spec.get("pre_tokenizer"))
        self.specials = _parse_post_processor(spec.get("post_processor"))

    @classmethod
    def from_file(cls, path: Path) -> "_WordPieceTokenizer":
        with path.open(encoding="utf-8") as handle:
            spec = json.load(handle)
        if not isinstance(spec, dict):
            raise TextProcessingError("Tokenizer file is not a JSON object")
        return cls(spec)

    def _word_piece(self, word: str) -> list[int]:
        if len(word) > self.max_chars:
            return [self.unk_id]
        ids: list[int] = []
        start = 0
        while start < len(word):
            end = len(word)
            found: Optional[int] = None
            while start < end:
                piece = word[start:end] if start == 0 else self.prefix + word[start:end]
                if piece in self.vocab:
                    found = self.vocab[piece]
                    break
                end -= 1
            if found is None:
                return [self.unk_id]
            ids.append(found)
            start = end
        return ids

    def encode(self, text: str, add_special_tokens: bool) -> tuple[list[int], list[int], list[int]]:
        """Return ids, attention mask and type ids for ``text``."""
        pairs = [(i, 0) for word in self.pre_tokenize(self.normalize(text)) for i in self._word_piece(word)]
        if add_special_tokens:
            prefix, suffix = self.specials
            pairs = prefix + pairs + suffix
        ids = [piece_id for piece_id, _ in pairs]
        type_ids = [type_id for _, type_id in pairs]
        return ids, [1] * len(ids), type_ids

    @property
    def vocab_size(self) -> int:
        return len(self.vocab)


def _fallback_token_id(word: str) -> int:
    digest = hashlib.blake2b(word.encode("utf-8"), digest_size=8).digest()
    return int.from_bytes(digest, "little") % 30000 + 1000


class TextProcessor:
    """Normalizes text and turns it into fixed-length token sequences."""

    def __init__(self, config: Optional[TextConfig] = None) -> None:
        self.config = config if config is not None else TextConfig()
        self._tokenizer: Optional[_WordPieceTokenizer] = None

    def load_tokenizer(self, model_dir: Union[str, "os.PathLike[str]"]) -> None:
        """Load ``tokenizer.json`` from ``model_dir``."""
        path = Path(model_dir) / "tokenizer.json"
        if not path.exists():
            log.warning("Tokenizer file not found at %s", path)
            raise TextProcessingError("Tokenizer file not found")
        try:
            self._tokenizer = _WordPieceTokenizer.from_file(path)
        except (OSError, ValueError, KeyError, TypeError, IndexError, TextProcessingError) as exc:
            log.warning("Failed to load tokenizer from %s: %s", path, exc)
            raise TextProcessingError(f"Failed to load tokenizer: {exc}") from exc
        log.info("Loaded tokenizer from %s", path)

    def preprocess_text(self, text: str) -> str:
        """Normalize unicode and case as configured, and collapse whitespace."""
        if self.config.normalize_unicode:
            text = unicodedata.normalize("NFC", text)
        if self.config.lowercase:
            text = text.lower()
        return " ".join(text.split())

    def tokenize(self, text: str) -> TokenizedText:
        """Tokenize one text, padded or truncated to ``max_length``."""
        preprocessed = self.preprocess_text(text)
        original_length = len(text.encode("utf-8"))
        if self._tokenizer is None:
            log.warning("No tokenizer loaded, using fallback tokenization")
            return self._fallback_tokenize(preprocessed, original_length)
        return self._encode(preprocessed, original_length)

    def tokenize_batch(self, texts: Sequence[str]) -> list[TokenizedText]:
        """Tokenize several texts."""
        if self._tokenizer is None:
            return [self.tokenize(text) for text in texts]
        return [
            self._encode(self.preprocess_text(text), len(text.encode("utf-8"))) for text in texts
        ]

    def _encode(self, preprocessed: str, original_length: int) -> TokenizedText:
        assert self._tokenizer is not None
        ids, mask, type_ids = self._tokenizer.encode(preprocessed, self.config.add_special_tokens)
        return self._fit(ids, mask, type_ids, original_length)

    def _fit(
        self, ids: list[int], mask: list[int], type_ids: list[int], original_length: int
    ) -> TokenizedText:
        max_len = self.config.max_length
        if len(ids) > max_len and self.config.truncate:
            ids, mask, type_ids = ids[:max_len], mask[:max_len], type_ids[:max_len]
        elif len(ids) < max_len:
            pad = [PAD_TOKEN_ID] * (max_len - len(ids))
            ids, mask, type_ids = ids + pad, mask + [0] * len(pad), type_ids + [0] * len(pad)
        return TokenizedText(ids, mask, type_ids, original_length)

    def _fallback_tokenize(self, text: str, original_length: int) -> TokenizedText:
        words = text.split()
        word_limit = max(self.config.max_length - 2, 0)
        ids = [_fallback_token_id(word) for word in words[:word_limit]]
        if self.config.add_special_tokens:
            ids = [CLS_TOKEN_ID, *ids, SEP_TOKEN_ID]
        log.debug("Fallback tokenization: %d words -> %d tokens", len(words), len(ids))
        return self._fit(ids, [1] * len(ids), [0] * len(ids), original_length)

    def vocab_size(self) -> Optional[int]:
        """Return the vocabulary size of the loaded tokenizer, if any."""
        return None if self._tokenizer is None else self._tokenizer.vocab_size

    def has_tokenizer(self) -> bool:
        """Tell whether a real tokenizer has been loaded."""
        return self._tokenizer is not None