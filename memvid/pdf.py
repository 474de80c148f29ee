"""Detection of PDF documents."""

from __future__ import annotations

import os
from typing import Union

PDF_MAGIC = b"%PDF"


class PdfProcessor:
    """Helpers for working with PDF files."""

    @staticmethod
    def is_pdf(path: Union[str, "os.PathLike[str]"]) -> bool:
        """Tell whether the file at ``path`` starts with the PDF signature."""
        try:
            with open(path, "rb") as handle:
                return handle.read(len(PDF_MAGIC)) == PDF_MAGIC
        except OSError:
            return False