import io
import re

import pdfplumber

# pdfplumber emits (cid:NN) for glyphs without a unicode mapping
_CID_RE = re.compile(r"\(cid:\d+\)")


def extract_text(pdf_bytes: bytes) -> str:
    """Extract all text from a PDF file."""
    with pdfplumber.open(io.BytesIO(pdf_bytes)) as pdf:
        pages = [page.extract_text() or "" for page in pdf.pages]
    return _CID_RE.sub("", "\n".join(pages)).strip()


def is_pdf(content: bytes) -> bool:
    return content[:5] == b"%PDF-"
