"""Study-material library: create, update, delete and load documents.

Each document is embedded as one whole (no chunking) when it is created and
again whenever its content changes. An embedding failure never blocks the
write: the document is stored with a NULL embedding and only becomes
reachable through the keyword and fallback retrieval tiers.

File dispatch by extension:
  .txt .text .md .markdown .rst  → read as UTF-8 text
  .pdf                           → page-by-page text via pypdf
"""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass
from pathlib import Path

import pypdf

from studyweave.db.models import Document
from studyweave.db.repository import Repository
from studyweave.errors import DocumentNotFoundError, InvalidInputError
from studyweave.rag.retriever import Embedder

logger = logging.getLogger(__name__)

_TEXT_EXTS = {".txt", ".text", ".md", ".markdown", ".rst"}
_PDF_EXTS = {".pdf"}
SUPPORTED_EXTENSIONS = _TEXT_EXTS | _PDF_EXTS

_FILE_TYPES = {
    ".txt": "text/plain",
    ".text": "text/plain",
    ".md": "text/markdown",
    ".markdown": "text/markdown",
    ".rst": "text/x-rst",
    ".pdf": "application/pdf",
}


@dataclass
class LoadedFile:
    """Text and file facts extracted from one study-material file."""

    content: str
    file_name: str
    file_size: int
    file_type: str
    page_count: int | None = None
    extraction_method: str = "text"


def load_document_file(path: Path | str) -> LoadedFile:
    """Read *path* into a LoadedFile.

    Raises:
        InvalidInputError: If the file is missing, unsupported, or yields no text.
    """
    path = Path(path)
    if not path.is_file():
        raise InvalidInputError(f"File not found: {path}")

    ext = path.suffix.lower()
    if ext not in SUPPORTED_EXTENSIONS:
        raise InvalidInputError(
            f"Unsupported file type {ext!r}; expected one of {sorted(SUPPORTED_EXTENSIONS)}"
        )

    page_count = None
    if ext in _PDF_EXTS:
        content, page_count = _extract_pdf(path)
        method = "pypdf"
    else:
        content = path.read_text(encoding="utf-8", errors="replace")
        method = "text"

    if not content.strip():
        raise InvalidInputError(f"No text could be extracted from {path.name}")

    return LoadedFile(
        content=content,
        file_name=path.name,
        file_size=path.stat().st_size,
        file_type=_FILE_TYPES[ext],
        page_count=page_count,
        extraction_method=method,
    )


def _extract_pdf(path: Path) -> tuple[str, int]:
    reader = pypdf.PdfReader(str(path))
    parts: list[str] = []
    for page in reader.pages:
        text = (page.extract_text() or "").strip()
        if text:
            parts.append(text)
    return "\n\n".join(parts), len(reader.pages)


def count_words(text: str) -> int:
    return len(text.split())


class DocumentLibrary:
    """Owner-scoped document CRUD with embedding on write.

    Args:
        repo: Document store.
        embedder: Provider used to embed document content.
    """

    def __init__(self, repo: Repository, embedder: Embedder) -> None:
        self.repo = repo
        self.embedder = embedder

    def add(
        self,
        user_id: str,
        title: str,
        content: str,
        subject_id: str | None = None,
        file: LoadedFile | None = None,
    ) -> Document:
        """Embed and store a new document; returns the stored record."""
        title = title.strip()
        if not title:
            raise InvalidInputError("Document title must not be empty")
        if not content.strip():
            raise InvalidInputError("Document content must not be empty")

        metadata: dict = {}
        if file is not None:
            metadata["extraction_method"] = file.extraction_method

        document = Document(
            id=str(uuid.uuid4()),
            user_id=user_id,
            subject_id=subject_id,
            title=title,
            content=content,
            file_name=file.file_name if file else None,
            file_size=file.file_size if file else None,
            file_type=file.file_type if file else None,
            word_count=count_words(content),
            page_count=file.page_count if file else None,
            metadata=json.dumps(metadata),
            embedding=self._embed_or_none(content, title),
        )
        self.repo.add_document(document)
        logger.info(
            "Added document %s (%d words, embedded=%s)",
            document.id,
            document.word_count,
            document.has_embedding,
        )
        return self.repo.get_document(document.id) or document

    def add_file(
        self,
        user_id: str,
        path: Path | str,
        title: str | None = None,
        subject_id: str | None = None,
    ) -> Document:
        """Load *path* and add it; the title defaults to the file stem."""
        loaded = load_document_file(path)
        return self.add(
            user_id,
            title or Path(loaded.file_name).stem,
            loaded.content,
            subject_id=subject_id,
            file=loaded,
        )

    def update(
        self,
        document_id: str,
        user_id: str,
        *,
        title: str | None = None,
        content: str | None = None,
        subject_id: str | None = None,
    ) -> Document:
        """Update fields of an owned document.

        The embedding is regenerated when content changes, or on any update of
        a document that was stored without one.
        """
        document = self.get(document_id, user_id)

        if title is not None:
            if not title.strip():
                raise InvalidInputError("Document title must not be empty")
            document.title = title.strip()
        if subject_id is not None:
            document.subject_id = subject_id
        if content is not None and content != document.content:
            if not content.strip():
                raise InvalidInputError("Document content must not be empty")
            document.content = content
            document.word_count = count_words(content)
            document.embedding = self._embed_or_none(content, document.title)
        elif document.embedding is None:
            document.embedding = self._embed_or_none(document.content, document.title)

        self.repo.update_document(document)
        return self.repo.get_document(document_id) or document

    def delete(self, document_id: str, user_id: str) -> None:
        """Permanently delete an owned document."""
        self.get(document_id, user_id)
        self.repo.delete_document(document_id)
        logger.info("Deleted document %s", document_id)

    def get(self, document_id: str, user_id: str) -> Document:
        document = self.repo.get_document(document_id, user_id=user_id)
        if document is None:
            raise DocumentNotFoundError(document_id)
        return document

    def list(self, user_id: str, subject_id: str | None = None) -> list[Document]:
        return self.repo.list_documents(user_id, subject_id=subject_id)

    def _embed_or_none(self, content: str, title: str) -> list[float] | None:
        try:
            return self.embedder.embed(content)
        except Exception as exc:
            logger.warning("Embedding failed for %r, storing without embedding: %s", title, exc)
            return None
