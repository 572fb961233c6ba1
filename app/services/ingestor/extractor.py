from abc import ABC, abstractmethod
from typing import Dict, Optional
import io
import logging
import os

import PyPDF2
from docx import Document as DocxDocument

from app.core.exceptions import ExtractionFailed, UnsupportedFormat
from app.db.models.document import DocumentType

logger = logging.getLogger(__name__)

UNKNOWN_MEDIA_TYPE = "application/octet-stream"

EXTENSION_MEDIA_TYPES: Dict[str, str] = {
    ".pdf": DocumentType.PDF.value,
    ".docx": DocumentType.DOCX.value,
    ".txt": DocumentType.TXT.value,
    ".md": DocumentType.MARKDOWN.value,
}


class Extractor(ABC):
    """
    Abstract base class for extractors that turn raw file bytes into plain text.
    """

    @abstractmethod
    def extract(self, content: bytes) -> str:
        """
        Extract plain text from a document.

        Args:
            content: Raw document content as bytes

        Returns:
            Extracted text
        """
        pass


class PDFExtractor(Extractor):
    """
    Extractor for PDF documents using PyPDF2.
    """

    def extract(self, content: bytes) -> str:
        pdf_reader = PyPDF2.PdfReader(io.BytesIO(content))

        page_texts = []
        for page in pdf_reader.pages:
            page_text = page.extract_text()
            if page_text:
                page_texts.append(page_text)

        logger.debug(f"Extracted {len(page_texts)} of {len(pdf_reader.pages)} PDF pages")
        return "\n".join(page_texts)


class DocxExtractor(Extractor):
    """
    Extractor for Office Open XML word-processing documents.
    """

    def extract(self, content: bytes) -> str:
        document = DocxDocument(io.BytesIO(content))
        return "\n".join(paragraph.text for paragraph in document.paragraphs)


class PlainTextExtractor(Extractor):
    """
    Extractor for plain text and Markdown; Markdown is kept verbatim.
    """

    def extract(self, content: bytes) -> str:
        return content.decode("utf-8", errors="replace")


class ExtractorFactory:
    """
    Factory returning the extractor for a media type.

    Extractors are stateless, so one shared instance per type is kept.
    """

    _extractors: Dict[str, Extractor] = {
        DocumentType.PDF.value: PDFExtractor(),
        DocumentType.DOCX.value: DocxExtractor(),
        DocumentType.TXT.value: PlainTextExtractor(),
        DocumentType.MARKDOWN.value: PlainTextExtractor(),
    }

    @classmethod
    def create_extractor(cls, media_type: str, file_path: Optional[str] = None) -> Extractor:
        """
        Get the extractor for a media type.

        Raises:
            UnsupportedFormat: If no extractor handles the media type
        """
        extractor = cls._extractors.get((media_type or "").lower())
        if extractor is None:
            raise UnsupportedFormat(media_type, file_path)
        return extractor

    @classmethod
    def supported_media_types(cls):
        return list(cls._extractors.keys())


def media_type_for(file_path: str) -> str:
    """Declared media type of a file, from its extension"""
    extension = os.path.splitext(file_path)[1].lower()
    return EXTENSION_MEDIA_TYPES.get(extension, UNKNOWN_MEDIA_TYPE)


def is_supported(media_type: str) -> bool:
    return (media_type or "").lower() in ExtractorFactory.supported_media_types()


def extract_bytes(content: bytes, media_type: str, file_path: str = "<memory>") -> str:
    """
    Extract text from bytes already read from disk.

    Raises:
        UnsupportedFormat: Unknown media type
        ExtractionFailed: The parser raised; the original error is attached
    """
    extractor = ExtractorFactory.create_extractor(media_type, file_path)
    try:
        return extractor.extract(content)
    except Exception as e:
        logger.error(f"Failed to extract text from {file_path}: {e}")
        raise ExtractionFailed(file_path, e) from e


def extract(file_path: str, media_type: str) -> str:
    """
    Convert a file into plain text according to its declared media type.

    Blocking; call through run_sync from async code.
    """
    # Fail on the media type before touching the file
    ExtractorFactory.create_extractor(media_type, file_path)
    try:
        with open(file_path, "rb") as f:
            content = f.read()
    except OSError as e:
        raise ExtractionFailed(file_path, e) from e
    return extract_bytes(content, media_type, file_path)
