"""Tests for Repository CRUD and retrieval queries."""

from __future__ import annotations

import json

import pytest

from studyweave.db.models import Conversation, Document, Message


def _doc(doc_id: str, embedding=None, user_id: str = "u1", subject_id=None, **kw) -> Document:
    return Document(
        id=doc_id,
        user_id=user_id,
        subject_id=subject_id,
        title=kw.pop("title", f"Title {doc_id}"),
        content=kw.pop("content", f"Content of {doc_id}"),
        embedding=embedding,
        **kw,
    )


def _conv(repo, conv_id: str = "c1", user_id: str = "u1", subject_id=None) -> Conversation:
    conv = Conversation(id=conv_id, user_id=user_id, title="New Conversation", subject_id=subject_id)
    repo.add_conversation(conv)
    return conv


# ------------------------------------------------------------------
# Documents
# ------------------------------------------------------------------


def test_add_and_get_document_roundtrip(repo):
    repo.add_document(_doc("d1", [1.0, 0.0, 0.0], word_count=3, metadata='{"k": 1}'))
    doc = repo.get_document("d1")
    assert doc is not None
    assert doc.title == "Title d1"
    assert doc.word_count == 3
    assert doc.metadata_dict == {"k": 1}
    assert doc.embedding == pytest.approx([1.0, 0.0, 0.0])
    assert doc.created_at is not None


def test_document_without_embedding(repo):
    repo.add_document(_doc("d1"))
    doc = repo.get_document("d1")
    assert doc.embedding is None
    assert not doc.has_embedding


def test_add_document_rejects_wrong_dimension(repo):
    with pytest.raises(ValueError, match="dimension"):
        repo.add_document(_doc("d1", [1.0, 0.0]))
    assert repo.get_document("d1") is None


def test_get_document_scoped_to_owner(repo):
    repo.add_document(_doc("d1", user_id="u1"))
    assert repo.get_document("d1", user_id="u1") is not None
    assert repo.get_document("d1", user_id="u2") is None


def test_list_documents_scoped_and_filtered(repo):
    repo.add_document(_doc("d1", subject_id="bio"))
    repo.add_document(_doc("d2", subject_id="chem"))
    repo.add_document(_doc("d3", user_id="u2", subject_id="bio"))
    assert {d.id for d in repo.list_documents("u1")} == {"d1", "d2"}
    assert [d.id for d in repo.list_documents("u1", subject_id="bio")] == ["d1"]


def test_update_document_replaces_content_and_embedding(repo):
    repo.add_document(_doc("d1", [1.0, 0.0, 0.0]))
    doc = repo.get_document("d1")
    doc.content = "Updated"
    doc.embedding = [0.0, 1.0, 0.0]
    repo.update_document(doc)
    stored = repo.get_document("d1")
    assert stored.content == "Updated"
    assert stored.embedding == pytest.approx([0.0, 1.0, 0.0])
    assert stored.updated_at >= stored.created_at


def test_delete_document(repo):
    repo.add_document(_doc("d1", [1.0, 0.0, 0.0]))
    repo.delete_document("d1")
    assert repo.get_document("d1") is None
    assert repo.search_similar("u1", [1.0, 0.0, 0.0], 0.0, 10) == []


# ------------------------------------------------------------------
# search_similar
# ------------------------------------------------------------------


def test_search_similar_orders_by_similarity(repo):
    repo.add_document(_doc("far", [0.0, 1.0, 0.0]))
    repo.add_document(_doc("near", [1.0, 0.1, 0.0]))
    repo.add_document(_doc("mid", [1.0, 1.0, 0.0]))
    hits = repo.search_similar("u1", [1.0, 0.0, 0.0], threshold=0.5, limit=10)
    assert [d.id for d, _ in hits] == ["near", "mid"]
    assert hits[0][1] > hits[1][1] > 0.5


def test_search_similar_threshold_is_exclusive(repo):
    repo.add_document(_doc("orth", [0.0, 1.0, 0.0]))
    assert repo.search_similar("u1", [1.0, 0.0, 0.0], threshold=0.0, limit=10) == []


def test_search_similar_skips_missing_embeddings(repo):
    repo.add_document(_doc("none"))
    repo.add_document(_doc("some", [1.0, 0.0, 0.0]))
    hits = repo.search_similar("u1", [1.0, 0.0, 0.0], threshold=0.1, limit=10)
    assert [d.id for d, _ in hits] == ["some"]


def test_search_similar_respects_scope_and_limit(repo):
    for i in range(4):
        repo.add_document(_doc(f"bio{i}", [1.0, 0.0, 0.0], subject_id="bio"))
    repo.add_document(_doc("chem", [1.0, 0.0, 0.0], subject_id="chem"))
    repo.add_document(_doc("other", [1.0, 0.0, 0.0], user_id="u2"))
    assert len(repo.search_similar("u1", [1.0, 0.0, 0.0], 0.1, limit=2)) == 2
    hits = repo.search_similar("u1", [1.0, 0.0, 0.0], 0.1, limit=10, subject_id="bio")
    assert {d.id for d, _ in hits} == {"bio0", "bio1", "bio2", "bio3"}


def test_search_similar_rejects_wrong_query_dimension(repo):
    with pytest.raises(ValueError):
        repo.search_similar("u1", [1.0, 0.0], 0.1, limit=5)


# ------------------------------------------------------------------
# search_keywords / recent_documents
# ------------------------------------------------------------------


def test_search_keywords_matches_title_or_content_case_insensitive(repo):
    repo.add_document(_doc("d1", title="Photosynthesis Basics", content="light"))
    repo.add_document(_doc("d2", title="Cells", content="Mitochondria are organelles"))
    repo.add_document(_doc("d3", title="History", content="Rome"))
    found = repo.search_keywords("u1", ["photosynthesis", "mitochondria"], limit=10)
    assert {d.id for d in found} == {"d1", "d2"}


def test_search_keywords_folds_non_ascii_case(repo):
    repo.add_document(_doc("d1", title="Wald", content="Die ÖKOLOGIE der WÄLDER"))
    repo.add_document(_doc("d2", title="STRASSE", content="Verkehr"))
    repo.add_document(_doc("d3", content="unrelated"))
    assert [d.id for d in repo.search_keywords("u1", ["ökologie"], limit=10)] == ["d1"]
    assert [d.id for d in repo.search_keywords("u1", ["WÄLDER"], limit=10)] == ["d1"]
    assert [d.id for d in repo.search_keywords("u1", ["straße"], limit=10)] == ["d2"]


def test_search_keywords_newest_first(repo):
    repo.add_document(_doc("old", content="enzyme"))
    repo.add_document(_doc("new", content="enzyme"))
    assert [d.id for d in repo.search_keywords("u1", ["enzyme"], limit=10)] == ["new", "old"]


def test_search_keywords_treats_wildcards_literally(repo):
    repo.add_document(_doc("d1", content="plain text"))
    assert repo.search_keywords("u1", ["%"], limit=10) == []
    assert repo.search_keywords("u1", ["_"], limit=10) == []


def test_search_keywords_no_terms(repo):
    repo.add_document(_doc("d1"))
    assert repo.search_keywords("u1", [], limit=10) == []


def test_recent_documents_newest_first_with_limit(repo):
    for i in range(5):
        repo.add_document(_doc(f"d{i}"))
    assert [d.id for d in repo.recent_documents("u1", limit=3)] == ["d4", "d3", "d2"]


# ------------------------------------------------------------------
# Conversations and messages
# ------------------------------------------------------------------


def test_get_conversation_owner_scoped(repo):
    _conv(repo, "c1", user_id="u1")
    assert repo.get_conversation("c1", "u1") is not None
    assert repo.get_conversation("c1", "u2") is None


def test_list_conversations_most_recently_updated_first(repo, tmp_db):
    _conv(repo, "c1")
    _conv(repo, "c2")
    tmp_db.execute("UPDATE conversations SET updated_at = '2020-01-01 00:00:00.000'")
    tmp_db.commit()
    repo.touch_conversation("c1")
    assert [c.id for c in repo.list_conversations("u1")] == ["c1", "c2"]


def test_list_conversations_paging(repo):
    for i in range(5):
        _conv(repo, f"c{i}")
    page = repo.list_conversations("u1", limit=2, offset=2)
    assert [c.id for c in page] == ["c2", "c1"]


def test_update_conversation_title(repo):
    _conv(repo, "c1")
    repo.update_conversation_title("c1", "Photosynthesis")
    assert repo.get_conversation("c1", "u1").title == "Photosynthesis"


def test_add_message_returns_stored_row(repo):
    _conv(repo, "c1")
    stored = repo.add_message(
        Message(
            id="m1",
            conversation_id="c1",
            role="assistant",
            content="{}",
            metadata=json.dumps({"isStructured": True}),
            sources=["d1", "d2"],
            token_count=42,
        )
    )
    assert stored.created_at is not None
    assert stored.sources == ["d1", "d2"]
    assert stored.metadata_dict == {"isStructured": True}
    assert stored.token_count == 42


def test_recent_messages_chronological_last_n(repo):
    _conv(repo, "c1")
    for i in range(5):
        repo.add_message(Message(id=f"m{i}", conversation_id="c1", role="user", content=str(i)))
    assert [m.content for m in repo.recent_messages("c1", limit=3)] == ["2", "3", "4"]


def test_list_and_count_messages(repo):
    _conv(repo, "c1")
    for i in range(4):
        repo.add_message(Message(id=f"m{i}", conversation_id="c1", role="user", content=str(i)))
    assert repo.count_messages("c1") == 4
    assert [m.content for m in repo.list_messages("c1", limit=2, offset=1)] == ["1", "2"]


def test_delete_conversation_cascades_messages(repo):
    _conv(repo, "c1")
    repo.add_message(Message(id="m1", conversation_id="c1", role="user", content="hi"))
    repo.delete_conversation("c1")
    assert repo.get_conversation("c1", "u1") is None
    assert repo.count_messages("c1") == 0
