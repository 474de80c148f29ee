from memvid.pdf import PdfProcessor


def test_is_pdf_detection(tmp_path):
    path = tmp_path / "doc.pdf"
    path.write_text("%PDF-1.4\n")
    assert PdfProcessor.is_pdf(path) is True


def test_non_pdf_detection(tmp_path):
    path = tmp_path / "notes.txt"
    path.write_text("This is not a PDF\n")
    assert PdfProcessor.is_pdf(path) is False


def test_nonexistent_file():
    assert PdfProcessor.is_pdf("/nonexistent/file.pdf") is False


def test_short_file(tmp_path):
    path = tmp_path / "short.pdf"
    path.write_bytes(b"%P")
    assert PdfProcessor.is_pdf(path) is False


def test_directory_is_not_pdf(tmp_path):
    assert PdfProcessor.is_pdf(tmp_path) is False


def test_accepts_string_path(tmp_path):
    path = tmp_path / "doc.pdf"
    path.write_bytes(b"%PDF-1.7 rest")
    assert PdfProcessor.is_pdf(str(path)) is True