import json

import pytest

from memvid.text import TextConfig, TextProcessingError, TextProcessor, TokenizedText

VOCAB = {
    "[PAD]": 0,
    "[UNK]": 1,
    "[CLS]": 2,
    "[SEP]": 3,
    "hello": 4,
    "world": 5,
    "!": 6,
    "wor": 7,
    "##ld": 8,
}


def _write_tokenizer(directory, post_processor):
    spec = {
        "normalizer": {"type": "BertNormalizer", "lowercase": True},
        "pre_tokenizer": {"type": "BertPreTokenizer"},
        "post_processor": post_processor,
        "model": {
            "type": "WordPiece",
            "unk_token": "[UNK]",
            "continuing_subword_prefix": "##",
            "max_input_chars_per_word": 100,
            "vocab": VOCAB,
        },
    }
    (directory / "tokenizer.json").write_text(json.dumps(spec), encoding="utf-8")


BERT_POST = {"type": "BertProcessing", "sep": ["[SEP]", 3], "cls": ["[CLS]", 2]}
TEMPLATE_POST = {
    "type": "TemplateProcessing",
    "single": [
        {"SpecialToken": {"id": "[CLS]", "type_id": 0}},
        {"Sequence": {"id": "A", "type_id": 0}},
        {"SpecialToken": {"id": "[SEP]", "type_id": 0}},
    ],
    "special_tokens": {
        "[CLS]": {"id": "[CLS]", "ids": [2], "tokens": ["[CLS]"]},
        "[SEP]": {"id": "[SEP]", "ids": [3], "tokens": ["[SEP]"]},
    },
}


def test_text_config_default():
    config = TextConfig()
    assert config.max_length == 384
    assert config.truncate is True
    assert config.add_special_tokens is True
    assert config.normalize_unicode is True
    assert config.lowercase is False


def test_text_preprocessing():
    processor = TextProcessor(TextConfig(normalize_unicode=True, lowercase=True))
    assert processor.preprocess_text("  Hello    WORLD!  ") == "hello world!"


def test_preprocessing_keeps_case_by_default():
    processor = TextProcessor()
    assert processor.preprocess_text("A\tB\n\nC") == "A B C"


def test_fallback_tokenization():
    config = TextConfig()
    processor = TextProcessor(config)
    text = "Hello world test"
    tokenized = processor.tokenize(text)
    assert len(tokenized.input_ids) == config.max_length
    assert len(tokenized.attention_mask) == config.max_length
    assert tokenized.original_length == len(text)
    assert tokenized.input_ids[0] == 101
    assert tokenized.input_ids[4] == 102
    assert tokenized.attention_mask[:5] == [1] * 5
    assert tokenized.attention_mask[5] == 0


def test_fallback_ids_are_stable_and_in_range():
    processor = TextProcessor(TextConfig(max_length=8))
    first = processor.tokenize("alpha beta alpha")
    assert first.input_ids[1] == first.input_ids[3]
    assert all(1000 <= token < 31000 for token in first.input_ids[1:4])
    assert processor.tokenize("alpha beta alpha").input_ids == first.input_ids


def test_batch_tokenization_fallback():
    config = TextConfig()
    processor = TextProcessor(config)
    tokenized = processor.tokenize_batch(["First sentence", "Second sentence", "Third sentence"])
    assert len(tokenized) == 3
    for tokens in tokenized:
        assert len(tokens.input_ids) == config.max_length
        assert len(tokens.attention_mask) == config.max_length


def test_padding_truncation():
    processor = TextProcessor(TextConfig(max_length=10, truncate=True))
    long_tokens = processor.tokenize("This is a very long sentence that should be truncated")
    assert len(long_tokens.input_ids) == 10
    short_tokens = processor.tokenize("Short")
    assert len(short_tokens.input_ids) == 10
    assert 0 in short_tokens.attention_mask


def test_original_length_counts_utf8_bytes():
    processor = TextProcessor(TextConfig(max_length=4))
    assert processor.tokenize("héllo").original_length == 6


def test_load_tokenizer_missing_file(tmp_path):
    processor = TextProcessor()
    with pytest.raises(TextProcessingError, match="not found"):
        processor.load_tokenizer(tmp_path)
    assert processor.has_tokenizer() is False
    assert processor.vocab_size() is None


def test_load_tokenizer_invalid_json(tmp_path):
    (tmp_path / "tokenizer.json").write_text("{not json", encoding="utf-8")
    processor = TextProcessor()
    with pytest.raises(TextProcessingError, match="Failed to load tokenizer"):
        processor.load_tokenizer(tmp_path)


@pytest.mark.parametrize("post", [BERT_POST, TEMPLATE_POST])
def test_real_tokenizer_encoding(tmp_path, post):
    _write_tokenizer(tmp_path, post)
    processor = TextProcessor(TextConfig(max_length=8))
    processor.load_tokenizer(tmp_path)
    assert processor.has_tokenizer() is True
    assert processor.vocab_size() == len(VOCAB)
    result = processor.tokenize("Hello world!")
    assert result == TokenizedText(
        input_ids=[2, 4, 5, 6, 3, 0, 0, 0],
        attention_mask=[1, 1, 1, 1, 1, 0, 0, 0],
        token_type_ids=[0] * 8,
        original_length=12,
    )


def test_real_tokenizer_subwords_and_unknown(tmp_path):
    _write_tokenizer(tmp_path, BERT_POST)
    processor = TextProcessor(TextConfig(max_length=6))
    processor.load_tokenizer(tmp_path)
    assert processor.tokenize("worldld").input_ids == [2, 5, 8, 3, 0, 0]
    assert processor.tokenize("xyz").input_ids == [2, 1, 3, 0, 0, 0]


def test_real_tokenizer_without_special_tokens(tmp_path):
    _write_tokenizer(tmp_path, BERT_POST)
    processor = TextProcessor(TextConfig(max_length=3, add_special_tokens=False))
    processor.load_tokenizer(tmp_path)
    assert processor.tokenize("hello world").input_ids == [4, 5, 0]


def test_real_tokenizer_truncates(tmp_path):
    _write_tokenizer(tmp_path, BERT_POST)
    processor = TextProcessor(TextConfig(max_length=3))
    processor.load_tokenizer(tmp_path)
    result = processor.tokenize("hello world hello world")
    assert result.input_ids == [2, 4, 5]
    assert result.attention_mask == [1, 1, 1]


def test_real_tokenizer_no_truncation_keeps_length(tmp_path):
    _write_tokenizer(tmp_path, BERT_POST)
    processor = TextProcessor(TextConfig(max_length=3, truncate=False))
    processor.load_tokenizer(tmp_path)
    assert processor.tokenize("hello world hello").input_ids == [2, 4, 5, 4, 3]


def test_real_tokenizer_batch(tmp_path):
    _write_tokenizer(tmp_path, BERT_POST)
    processor = TextProcessor(TextConfig(max_length=5))
    processor.load_tokenizer(tmp_path)
    results = processor.tokenize_batch(["hello", "world !"])
    assert [r.input_ids for r in results] == [[2, 4, 3, 0, 0], [2, 5, 6, 3, 0]]
    assert [r.original_length for r in results] == [5, 7]