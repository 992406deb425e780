"""Repository pattern for all StudyWeave database operations.

Single interface for: documents (CRUD + the three retrieval queries),
conversations, and append-only messages. Embeddings live in the
``documents.embedding`` BLOB column as float32 vectors; cosine similarity is
computed in SQL with sqlite-vec's ``vec_distance_cosine`` so that scoping,
thresholding, ordering and limiting happen in one query.
"""

from __future__ import annotations

import json
import sqlite3

import sqlite_vec

from studyweave.db.models import Conversation, Document, Message

_DOCUMENT_COLUMNS = (
    "id, user_id, subject_id, title, content, file_name, file_size, file_type, "
    "word_count, page_count, metadata, embedding, created_at, updated_at"
)

_CONVERSATION_COLUMNS = "id, user_id, subject_id, title, description, created_at, updated_at"

_MESSAGE_COLUMNS = (
    "id, conversation_id, role, content, metadata, sources, token_count, created_at"
)

_NOW = "strftime('%Y-%m-%d %H:%M:%f', 'now')"


class Repository:
    """Data access layer for all StudyWeave database entities.

    Wraps an open sqlite3.Connection. The connection is owned by the caller
    and must be closed after use.
    """

    def __init__(self, conn: sqlite3.Connection, embedding_dimensions: int = 768) -> None:
        """Initialise with an open database connection.

        Args:
            conn: An open sqlite3.Connection with sqlite-vec loaded and schema
                initialised (see studyweave.db.schema.initialize).
            embedding_dimensions: The only vector length this store accepts.
        """
        self._conn = conn
        self.embedding_dimensions = embedding_dimensions

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def add_document(self, document: Document) -> None:
        """Insert a new document record.

        Raises:
            ValueError: If the embedding has the wrong dimensionality.
        """
        self._conn.execute(
            """
            INSERT INTO documents (
                id, user_id, subject_id, title, content, file_name, file_size,
                file_type, word_count, page_count, metadata, embedding
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                document.id,
                document.user_id,
                document.subject_id,
                document.title,
                document.content,
                document.file_name,
                document.file_size,
                document.file_type,
                document.word_count,
                document.page_count,
                document.metadata,
                self._serialize(document.embedding),
            ),
        )
        self._conn.commit()

    def get_document(self, document_id: str, user_id: str | None = None) -> Document | None:
        """Return a document by ID (optionally owner-scoped), or None if not found."""
        sql = f"SELECT {_DOCUMENT_COLUMNS} FROM documents WHERE id = ?"
        params: list = [document_id]
        if user_id is not None:
            sql += " AND user_id = ?"
            params.append(user_id)
        row = self._conn.execute(sql, params).fetchone()
        return _row_to_document(row) if row else None

    def list_documents(self, user_id: str, subject_id: str | None = None) -> list[Document]:
        """Return the user's documents, newest first."""
        where, params = _scope(user_id, subject_id)
        rows = self._conn.execute(
            f"SELECT {_DOCUMENT_COLUMNS} FROM documents WHERE {where} "
            "ORDER BY created_at DESC, rowid DESC",
            params,
        ).fetchall()
        return [_row_to_document(r) for r in rows]

    def update_document(self, document: Document) -> None:
        """Overwrite content fields and embedding of an existing document.

        Raises:
            ValueError: If the embedding has the wrong dimensionality.
        """
        self._conn.execute(
            f"""
            UPDATE documents SET
                subject_id = ?, title = ?, content = ?, file_name = ?, file_size = ?,
                file_type = ?, word_count = ?, page_count = ?, metadata = ?,
                embedding = ?, updated_at = {_NOW}
            WHERE id = ?
            """,
            (
                document.subject_id,
                document.title,
                document.content,
                document.file_name,
                document.file_size,
                document.file_type,
                document.word_count,
                document.page_count,
                document.metadata,
                self._serialize(document.embedding),
                document.id,
            ),
        )
        self._conn.commit()

    def delete_document(self, document_id: str) -> None:
        """Permanently delete a document by ID."""
        self._conn.execute("DELETE FROM documents WHERE id = ?", (document_id,))
        self._conn.commit()

    # ------------------------------------------------------------------
    # Retrieval queries
    # ------------------------------------------------------------------

    def search_similar(
        self,
        user_id: str,
        embedding: list[float],
        threshold: float,
        limit: int,
        subject_id: str | None = None,
    ) -> list[tuple[Document, float]]:
        """Documents with cosine similarity strictly above *threshold*.

        Returns (document, similarity) pairs sorted by similarity, best-first.
        Documents without an embedding are never considered.
        """
        where, params = _scope(user_id, subject_id)
        query_blob = self._serialize(embedding)
        rows = self._conn.execute(
            f"""
            SELECT * FROM (
                SELECT {_DOCUMENT_COLUMNS},
                       1 - vec_distance_cosine(embedding, ?) AS similarity
                FROM documents
                WHERE {where} AND embedding IS NOT NULL
            )
            WHERE similarity > ?
            ORDER BY similarity DESC
            LIMIT ?
            """,
            [query_blob, *params, threshold, limit],
        ).fetchall()
        return [(_row_to_document(r), float(r["similarity"])) for r in rows]

    def search_keywords(
        self,
        user_id: str,
        terms: list[str],
        limit: int,
        subject_id: str | None = None,
    ) -> list[Document]:
        """Documents whose title or content contains any of *terms* (case-insensitive).

        Ordered by recency, newest first.
        """
        if not terms:
            return []
        where, params = _scope(user_id, subject_id)
        clauses: list[str] = []
        for term in terms:
            folded = term.casefold()
            clauses.append(
                "(instr(casefold(title), ?) > 0 OR instr(casefold(content), ?) > 0)"
            )
            params.extend([folded, folded])
        rows = self._conn.execute(
            f"SELECT {_DOCUMENT_COLUMNS} FROM documents WHERE {where} "
            f"AND ({' OR '.join(clauses)}) "
            "ORDER BY created_at DESC, rowid DESC LIMIT ?",
            [*params, limit],
        ).fetchall()
        return [_row_to_document(r) for r in rows]

    def recent_documents(
        self, user_id: str, limit: int, subject_id: str | None = None
    ) -> list[Document]:
        """Most recently created documents in scope, with or without embeddings."""
        where, params = _scope(user_id, subject_id)
        rows = self._conn.execute(
            f"SELECT {_DOCUMENT_COLUMNS} FROM documents WHERE {where} "
            "ORDER BY created_at DESC, rowid DESC LIMIT ?",
            [*params, limit],
        ).fetchall()
        return [_row_to_document(r) for r in rows]

    # ------------------------------------------------------------------
    # Conversations
    # ------------------------------------------------------------------

    def add_conversation(self, conversation: Conversation) -> None:
        """Insert a new conversation record."""
        self._conn.execute(
            """
            INSERT INTO conversations (id, user_id, subject_id, title, description)
            VALUES (?, ?, ?, ?, ?)
            """,
            (
                conversation.id,
                conversation.user_id,
                conversation.subject_id,
                conversation.title,
                conversation.description,
            ),
        )
        self._conn.commit()

    def get_conversation(self, conversation_id: str, user_id: str) -> Conversation | None:
        """Return the conversation only if it exists and belongs to *user_id*."""
        row = self._conn.execute(
            f"SELECT {_CONVERSATION_COLUMNS} FROM conversations WHERE id = ? AND user_id = ?",
            (conversation_id, user_id),
        ).fetchone()
        return _row_to_conversation(row) if row else None

    def list_conversations(
        self,
        user_id: str,
        subject_id: str | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> list[Conversation]:
        """Return the user's conversations, most recently updated first."""
        where, params = _scope(user_id, subject_id)
        rows = self._conn.execute(
            f"SELECT {_CONVERSATION_COLUMNS} FROM conversations WHERE {where} "
            "ORDER BY updated_at DESC, rowid DESC LIMIT ? OFFSET ?",
            [*params, limit, offset],
        ).fetchall()
        return [_row_to_conversation(r) for r in rows]

    def update_conversation_title(self, conversation_id: str, title: str) -> None:
        self._conn.execute(
            "UPDATE conversations SET title = ? WHERE id = ?", (title, conversation_id)
        )
        self._conn.commit()

    def touch_conversation(self, conversation_id: str) -> None:
        """Bump the conversation's updated_at timestamp."""
        self._conn.execute(
            f"UPDATE conversations SET updated_at = {_NOW} WHERE id = ?",
            (conversation_id,),
        )
        self._conn.commit()

    def delete_conversation(self, conversation_id: str) -> None:
        """Delete a conversation; its messages cascade."""
        self._conn.execute("DELETE FROM conversations WHERE id = ?", (conversation_id,))
        self._conn.commit()

    # ------------------------------------------------------------------
    # Messages (append-only)
    # ------------------------------------------------------------------

    def add_message(self, message: Message) -> Message:
        """Append a message and return it with its stored created_at."""
        self._conn.execute(
            """
            INSERT INTO messages (id, conversation_id, role, content, metadata, sources, token_count)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                message.id,
                message.conversation_id,
                message.role,
                message.content,
                message.metadata,
                json.dumps(message.sources),
                message.token_count,
            ),
        )
        self._conn.commit()
        row = self._conn.execute(
            f"SELECT {_MESSAGE_COLUMNS} FROM messages WHERE id = ?", (message.id,)
        ).fetchone()
        return _row_to_message(row)

    def recent_messages(self, conversation_id: str, limit: int = 10) -> list[Message]:
        """Return the last *limit* messages in chronological order."""
        rows = self._conn.execute(
            f"""
            SELECT * FROM (
                SELECT {_MESSAGE_COLUMNS}, rowid AS seq FROM messages
                WHERE conversation_id = ?
                ORDER BY created_at DESC, seq DESC
                LIMIT ?
            ) ORDER BY created_at, seq
            """,
            (conversation_id, limit),
        ).fetchall()
        return [_row_to_message(r) for r in rows]

    def list_messages(
        self, conversation_id: str, limit: int = 50, offset: int = 0
    ) -> list[Message]:
        """Return messages oldest-first with paging."""
        rows = self._conn.execute(
            f"SELECT {_MESSAGE_COLUMNS} FROM messages WHERE conversation_id = ? "
            "ORDER BY created_at, rowid LIMIT ? OFFSET ?",
            (conversation_id, limit, offset),
        ).fetchall()
        return [_row_to_message(r) for r in rows]

    def count_messages(self, conversation_id: str) -> int:
        return self._conn.execute(
            "SELECT COUNT(*) FROM messages WHERE conversation_id = ?", (conversation_id,)
        ).fetchone()[0]

    # ------------------------------------------------------------------
    # Embedding serialization
    # ------------------------------------------------------------------

    def _serialize(self, embedding: list[float] | None) -> bytes | None:
        if embedding is None:
            return None
        if len(embedding) != self.embedding_dimensions:
            raise ValueError(
                f"Embedding has {len(embedding)} dimensions, "
                f"store expects {self.embedding_dimensions}"
            )
        return sqlite_vec.serialize_float32(embedding)


# ------------------------------------------------------------------
# Query helpers
# ------------------------------------------------------------------


def _scope(user_id: str, subject_id: str | None) -> tuple[str, list]:
    """WHERE fragment + params for owner scope with an optional subject filter."""
    if subject_id is None:
        return "user_id = ?", [user_id]
    return "user_id = ? AND subject_id = ?", [user_id, subject_id]


def _deserialize(blob: bytes | None) -> list[float] | None:
    if blob is None:
        return None
    return list(memoryview(blob).cast("f"))


# ------------------------------------------------------------------
# Row → model helpers
# ------------------------------------------------------------------


def _row_to_document(row: sqlite3.Row) -> Document:
    return Document(
        id=row["id"],
        user_id=row["user_id"],
        subject_id=row["subject_id"],
        title=row["title"],
        content=row["content"],
        file_name=row["file_name"],
        file_size=row["file_size"],
        file_type=row["file_type"],
        word_count=row["word_count"],
        page_count=row["page_count"],
        metadata=row["metadata"],
        embedding=_deserialize(row["embedding"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_conversation(row: sqlite3.Row) -> Conversation:
    return Conversation(
        id=row["id"],
        user_id=row["user_id"],
        subject_id=row["subject_id"],
        title=row["title"],
        description=row["description"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_message(row: sqlite3.Row) -> Message:
    return Message(
        id=row["id"],
        conversation_id=row["conversation_id"],
        role=row["role"],
        content=row["content"],
        metadata=row["metadata"],
        sources=json.loads(row["sources"]) if row["sources"] else [],
        token_count=row["token_count"],
        created_at=row["created_at"],
    )
