# memvid

Turn text into QR code images and back, split documents into chunks, and
keep chunk metadata in a SQLite database with indexed lookups.

The package is a library; it has no command-line program.

## What is in it

| Module | What it does |
| --- | --- |
| `memvid.chunking` | `TextChunker` splits text into `ChunkMetadata` records by characters, sentences, paragraphs or whitespace tokens |
| `memvid.qr_encoder` | `QrEncoder` renders text as a QR code image (a Pillow `Image`), gzip-compressing long text when that makes it shorter |
| `memvid.qr_decoder` | `QrDecoder` reads the QR code back from an image and undoes the compression |
| `memvid.database` | `Database` stores chunks, with their embeddings, in SQLite |
| `memvid.migrations` | `MigrationManager` creates or upgrades a versioned database schema |
| `memvid.text` | `TextProcessor` normalizes text and turns it into fixed-length token id sequences |
| `memvid.utils` | file-type checks, size formatting, filename sanitizing and path helpers |
| `memvid.pdf` | `PdfProcessor.is_pdf` checks a file for the PDF signature |

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Chunking text

```python
from memvid.chunking import ChunkingConfig, ChunkingStrategy, TextChunker

chunker = TextChunker.with_default_config()
chunks = chunker.chunk_text("This is sentence one. This is sentence two.", "notes.txt")

for chunk in chunks:
    print(chunk.id, chunk.offset, chunk.length, chunk.text)

sentence_chunker = TextChunker(
    ChunkingConfig(chunk_size=50, overlap=10, min_chunk_size=10),
    ChunkingStrategy.SENTENCE,
)
```

Before chunking, lines are stripped, empty lines dropped and all runs of
whitespace collapsed to single spaces. `ChunkingConfig` defaults to
`chunk_size=1024`, `overlap=32`, `min_chunk_size=100`. The strategies:

- `CHARACTER` – fixed-size windows that step forward by `chunk_size - overlap`;
  text no longer than `chunk_size` becomes one chunk.
- `SENTENCE` / `PARAGRAPH` – whole sentences (or paragraphs) are packed into
  chunks up to `chunk_size`; chunks shorter than `min_chunk_size` are dropped.
- `TOKEN` – whitespace-separated words packed up to `chunk_size`, each new
  chunk starting with roughly `overlap // 10` words from the previous one.

Chunks get sequential ids from 0. `ChunkMetadata` converts to and from
dictionaries and JSON:

```python
restored = type(chunks[0]).from_json(chunks[0].to_json())
assert restored == chunks[0]
```

## QR codes

```python
from memvid.qr_encoder import QrEncoder, QrConfig, EcLevel
from memvid.qr_decoder import QrDecoder

encoder = QrEncoder()
decoder = QrDecoder()

frame = encoder.encode_text("Hello, World!")
frame.image.save("hello.png")

result = decoder.decode_image(frame.image)
assert result.text == "Hello, World!"
print(result.was_compressed, result.encoded_size)
```

`QrConfig` options and defaults: `error_correction=EcLevel.M`,
`box_size=10` pixels per module, `border=4` modules of quiet zone,
`enable_compression=True`, `compression_threshold=100` (bytes of UTF-8).
The smallest QR version that holds the data is chosen automatically;
`version`, if set, is only checked to lie in 1–40, otherwise `QrCodeError`
is raised. Text that does not fit in a version-40 symbol also raises
`QrCodeError`.

When compression applies, the stored payload is `GZ:` followed by
base64-encoded gzip data, used only if it is shorter than the text itself;
the decoder recognises the prefix and decompresses.

Other encoder calls:

- `encode_chunks(texts)` – one `QrFrame` per text.
- `estimate_capacity(text)` – for each error correction level, the version
  the text needs and whether it fits at all.
- `QrEncoder.get_max_capacity(version, ec_level)` – a rough capacity figure
  from a fixed table, interpolated for versions not in it.

Other decoder calls:

- `decode_bytes(data)` – decode from encoded image bytes, e.g. a PNG file.
- `decode_batch(images)` – a list holding a `DecodeResult` or the
  `QrCodeError` for each image.
- `decode_with_preprocessing(image)` – tries the image as is, then with
  contrast stretching, then rescaled by 0.5, 1.5, 2.0, 0.75 and 1.25.
- `validate_decoded_text(text)` – true for non-empty text under 100,000
  bytes made of ASCII, letters, digits and whitespace.

The decoder reads upright, unrotated symbols that fill the image apart from
a light border, such as those the encoder produces or scaled copies of them.
It does not locate QR codes in photographs or correct for perspective.

## Storing chunk metadata

```python
from memvid.database import Database

with Database.memory() as db:
    db.insert_chunks(chunks)

    print(db.get_chunk_count())
    print(db.get_chunk_by_id(0))
    print(db.get_chunks_by_frame(0))
    print(db.search_chunks("sentence", 10))
    print(db.get_stats())
```

`Database(path)` opens or creates a file; `Database.memory()` gives an
in-memory one. Inserts happen in one transaction. Embeddings are stored as
little-endian 32-bit floats. `search_chunks` is a plain `LIKE` substring
match ordered by id. `get_stats` returns a `DatabaseStats` with the chunk
count, the frame count (highest frame number plus one) and the database
size in bytes. Failures raise `StorageError`.

## Migrations

```python
from memvid.migrations import MigrationManager

manager = MigrationManager("memvid.db")
manager.run_migrations()
print(manager.get_current_version(), manager.is_up_to_date())
```

A new file gets the initial schema; an existing one gets whichever of
`initial_schema`, `add_metadata_columns` and `add_search_indices` it lacks.
`get_current_version` returns `None` when the file does not exist. Failures
raise `MigrationError`, a subclass of `StorageError`.

## Tokenizing text

```python
from memvid.text import TextConfig, TextProcessor

processor = TextProcessor(TextConfig(max_length=16))
tokens = processor.tokenize("Hello world")
print(tokens.input_ids, tokens.attention_mask)
```

`preprocess_text` applies NFC normalization and lowercasing as configured
and collapses whitespace. Every sequence is padded with zeros to
`max_length` (default 384) and, with `truncate=True`, cut to it.

Without a tokenizer, words get hashed ids between 1000 and 30999, wrapped in
101/102 as start and end markers when `add_special_tokens` is set.
`load_tokenizer(model_dir)` reads `model_dir/tokenizer.json`; WordPiece
models are supported, with the common normalizer, pre-tokenizer and
post-processor settings. A missing or unsupported file raises
`TextProcessingError`.

## Helpers

```python
from memvid.utils import format_file_size, sanitize_filename, is_supported_document
from memvid.pdf import PdfProcessor

format_file_size(1536)                  # "1.5 KB"
sanitize_filename("bad/name*?.txt")     # "bad_name__.txt"
is_supported_document("README.md")      # True
PdfProcessor.is_pdf("paper.pdf")        # True if the file starts with %PDF
```

`memvid.utils` also has `get_file_extension`, `is_video_file`,
`calculate_progress`, `calculate_optimal_chunk_size`, `normalize_path`
(raises `FileNotFoundError` for a missing path), `ensure_directory` and
`get_timestamp`.

## What it does not do

- It does not write or read video files: QR images are produced and read
  one at a time, and putting them into a video is left to the caller.
- It does not extract text from PDF files; it only recognises them.
- It does not compute embeddings or run semantic search. Embeddings can be
  stored with chunks, but searching the database is by substring only.
- It has no command-line interface.