"""
Format-level text extraction.

Plain functions over bytes. They raise on corrupt input; the caller turns
exceptions into a `failed` outcome.
"""
import io
import re
import logging
import warnings
from typing import List, Optional, Tuple

logger = logging.getLogger(__name__)

PDF_MIME_TYPES = {'application/pdf'}

IMAGE_MIME_TYPES = {'image/jpeg', 'image/png', 'image/gif', 'image/webp'}

WORD_MIME_TYPES = {
    'application/vnd.openxmlformats-officedocument.wordprocessingml.document',
    'application/msword',
}

TEXT_MIME_TYPES = {'text/plain', 'text/html', 'text/csv', 'text/markdown'}

EXTENSION_MIME_TYPES = {
    'pdf': 'application/pdf',
    'jpg': 'image/jpeg',
    'jpeg': 'image/jpeg',
    'png': 'image/png',
    'gif': 'image/gif',
    'webp': 'image/webp',
    'docx': 'application/vnd.openxmlformats-officedocument.wordprocessingml.document',
    'doc': 'application/msword',
    'txt': 'text/plain',
    'htm': 'text/html',
    'html': 'text/html',
    'csv': 'text/csv',
    'md': 'text/markdown',
}


def resolve_mime_type(mime_type: Optional[str], filename: str = "") -> str:
    """
    Normalize a MIME type, guessing from the extension when the mail
    client only said application/octet-stream.
    """
    mime = (mime_type or '').split(';')[0].strip().lower()
    if mime and mime != 'application/octet-stream':
        if mime == 'image/jpg':
            return 'image/jpeg'
        return mime
    ext = filename.rsplit('.', 1)[-1].lower() if '.' in filename else ''
    return EXTENSION_MIME_TYPES.get(ext, mime or 'application/octet-stream')


def extract_pdf_text(data: bytes) -> Tuple[str, int]:
    """
    Extract the native text layer of a PDF.

    Returns:
        (text, page_count)
    """
    import pdfplumber

    text_parts = []
    with warnings.catch_warnings():
        warnings.filterwarnings('ignore')
        with pdfplumber.open(io.BytesIO(data)) as pdf:
            page_count = len(pdf.pages)
            for page in pdf.pages:
                text = page.extract_text()
                if text and text.strip():
                    text_parts.append(text)
    return '\n\n'.join(text_parts), page_count


def render_pdf_pages(data: bytes, scale: float = 2.0, max_pages: Optional[int] = None) -> List[bytes]:
    """
    Render PDF pages to PNG images for OCR.

    Args:
        data: PDF bytes
        scale: Render scale relative to 72 dpi
        max_pages: Stop after this many pages

    Returns:
        One PNG per page
    """
    import pdfplumber

    images = []
    resolution = int(72 * scale)
    with warnings.catch_warnings():
        warnings.filterwarnings('ignore')
        with pdfplumber.open(io.BytesIO(data)) as pdf:
            pages = pdf.pages if max_pages is None else pdf.pages[:max_pages]
            for page in pages:
                page_image = page.to_image(resolution=resolution)
                buffer = io.BytesIO()
                page_image.original.save(buffer, format='PNG')
                images.append(buffer.getvalue())
    return images


def extract_docx_text(data: bytes) -> str:
    """Extract paragraph and table text from a Word document."""
    from docx import Document

    doc = Document(io.BytesIO(data))
    parts = [p.text for p in doc.paragraphs if p.text]
    for table in doc.tables:
        for row in table.rows:
            cells = [cell.text.strip() for cell in row.cells if cell.text.strip()]
            if cells:
                parts.append(' | '.join(cells))
    return '\n'.join(parts)


def html_to_text(html: str) -> str:
    """Strip tags and collapse whitespace."""
    from bs4 import BeautifulSoup

    soup = BeautifulSoup(html, 'html.parser')
    for tag in soup(['script', 'style']):
        tag.decompose()
    return re.sub(r'\s+', ' ', soup.get_text(separator=' ')).strip()


def decode_text(content: bytes) -> str:
    """Decode bytes, trying common encodings before falling back to replacement."""
    for encoding in ('utf-8', 'utf-8-sig', 'cp1252'):
        try:
            return content.decode(encoding)
        except (UnicodeDecodeError, LookupError):
            continue
    return content.decode('utf-8', errors='replace')
