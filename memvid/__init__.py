"""Text chunking, QR code image encoding and decoding, and SQLite chunk storage."""

__version__ = "1.2.0"

__all__ = [
    "chunking",
    "database",
    "migrations",
    "pdf",
    "qr_decoder",
    "qr_encoder",
    "text",
    "utils",
]