"""Unit tests for keyword-weighted chunk scoring and retrieval."""

import pytest

from backend.app.docs.retriever import (
    keyword_weight,
    rank_chunks,
    rank_for_query,
    retrieve_chunks,
    retrieve_for_query,
    score_chunk,
)
from backend.app.models.docs import DocumentChunk
from backend.app.nlp.knowledge_base import KnowledgeBase

RED_LIGHT_CHUNK = (
    "Phạt tiền đối với người điều khiển xe không chấp hành hiệu lệnh của đèn tín hiệu "
    "giao thông."
)
OVERTAKING_CHUNK = "Phạt tiền đối với người điều khiển xe vượt xe không đúng quy định."
WEATHER_CHUNK = "Thời tiết hôm nay nắng đẹp."


def make_chunk(content: str, index: int = 0, document_id: int = 1) -> DocumentChunk:
    return DocumentChunk(
        id=f"{document_id}_chunk_{index}",
        document_id=document_id,
        document_title="Nghị định 168",
        content=content,
        chunk_index=index,
        total_chunks=index + 1,
    )


@pytest.mark.parametrize(
    ("keyword", "weight"),
    [
        ("không chấp hành hiệu lệnh", 8),
        ("mức phạt tiền", 8),
        ("phạt", 5),
        ("vi phạm", 5),
        ("điều 6", 4),
        ("khoản 9", 4),
        ("đèn đỏ", 2),
        ("fine", 2),
    ],
)
def test_keyword_weight(keyword: str, weight: int) -> None:
    assert keyword_weight(keyword) == weight


def test_score_chunk_citation_lookup(kb: KnowledgeBase) -> None:
    chunk = make_chunk("Điều 6 khoản 9 phạt tiền")

    # article 50 + clause 40 + combo 20 + direct phrase 15 + overlap 2x2 + legal content 5
    assert score_chunk(chunk, "điều 6 khoản 9", [], kb) == 134


def test_score_chunk_citation_needs_word_boundary(kb: KnowledgeBase) -> None:
    matching = make_chunk("Điều 6 quy định chung")
    longer_number = make_chunk("Điều 60 quy định chung")

    assert score_chunk(matching, "điều 6", [], kb) > score_chunk(longer_number, "điều 6", [], kb)


def test_score_chunk_counts_keyword_occurrences(kb: KnowledgeBase) -> None:
    once = make_chunk("đèn đỏ")
    twice = make_chunk("đèn đỏ rồi lại đèn đỏ")

    assert score_chunk(twice, "xyz", ["đèn đỏ"], kb) - score_chunk(once, "xyz", ["đèn đỏ"], kb) == 2


def test_score_chunk_monetary_amount(kb: KnowledgeBase) -> None:
    with_amount = make_chunk("phạt 400.000 đồng")
    without_amount = make_chunk("phạt tiền")

    assert score_chunk(with_amount, "xyz", [], kb) == 3
    assert score_chunk(without_amount, "xyz", [], kb) == 0


def test_unrelated_chunk_scores_zero(kb: KnowledgeBase) -> None:
    assert score_chunk(make_chunk(WEATHER_CHUNK), "điều 6", [], kb) == 0


def test_red_light_query_prefers_signal_violation(kb: KnowledgeBase) -> None:
    red_light = make_chunk(RED_LIGHT_CHUNK, 0)
    overtaking = make_chunk(OVERTAKING_CHUNK, 1)

    ranked = rank_for_query([overtaking, red_light], "vượt đèn đỏ bị phạt bao nhiêu", 5, kb=kb)

    assert ranked[0][0] == red_light


def test_overtaking_query_prefers_overtaking_rule(kb: KnowledgeBase) -> None:
    red_light = make_chunk(RED_LIGHT_CHUNK, 0)
    overtaking = make_chunk(OVERTAKING_CHUNK, 1)

    ranked = rank_for_query([red_light, overtaking], "vượt xe bên phải có bị phạt không", 5, kb=kb)

    assert ranked[0][0] == overtaking


def test_red_light_conflict_penalty(kb: KnowledgeBase) -> None:
    overtaking = make_chunk("vượt xe")

    # Only the conflict rule fires: "vượt xe" without any signal wording
    assert score_chunk(overtaking, "vượt đèn đỏ", [], kb) == -10


def test_rank_drops_non_positive_scores(kb: KnowledgeBase) -> None:
    chunks = [make_chunk(WEATHER_CHUNK, 0), make_chunk(RED_LIGHT_CHUNK, 1)]

    ranked = rank_chunks(chunks, "đèn tín hiệu", ["đèn tín hiệu"], 5, kb)

    assert [chunk.chunk_index for chunk, _ in ranked] == [1]


def test_rank_ties_keep_input_order(kb: KnowledgeBase) -> None:
    chunks = [make_chunk("phạt tiền", i) for i in range(4)]

    ranked = retrieve_chunks(chunks, "xyz", ["phạt"], 3, kb)

    assert [chunk.chunk_index for chunk in ranked] == [0, 1, 2]


def test_rank_respects_max_chunks(kb: KnowledgeBase) -> None:
    chunks = [make_chunk(f"phạt tiền lần {i}", i) for i in range(10)]

    assert len(rank_chunks(chunks, "xyz", ["phạt"], 4, kb)) == 4
    assert rank_chunks(chunks, "xyz", ["phạt"], 0, kb) == []
    assert rank_chunks([], "xyz", ["phạt"], 4, kb) == []


def test_legal_search_widens_limit(kb: KnowledgeBase) -> None:
    chunks = [make_chunk(f"Điều 6 khoản {i} phạt tiền.", i) for i in range(20)]

    assert len(retrieve_for_query(chunks, "điều 6 quy định gì", 8, kb=kb)) == 15
    assert len(retrieve_for_query(chunks, "mức phạt tiền", 8, kb=kb)) == 8


def test_legal_search_limit_is_configurable(kb: KnowledgeBase) -> None:
    chunks = [make_chunk(f"Điều 6 khoản {i} phạt tiền.", i) for i in range(20)]

    found = retrieve_for_query(chunks, "điều 6", 3, legal_search_max_chunks=5, kb=kb)

    assert len(found) == 5


def test_retrieval_is_deterministic(kb: KnowledgeBase, decree_text: str) -> None:
    chunks = [
        make_chunk(RED_LIGHT_CHUNK, 0),
        make_chunk(OVERTAKING_CHUNK, 1),
        make_chunk(decree_text, 2),
        make_chunk(WEATHER_CHUNK, 3),
    ]
    query = "vượt đèn đỏ bị phạt bao nhiêu tiền"

    first = retrieve_for_query(chunks, query, 8, kb=kb)
    second = retrieve_for_query(list(chunks), query, 8, kb=kb)

    assert first
    assert [chunk.id for chunk in first] == [chunk.id for chunk in second]


def test_cited_provision_outranks_generic_traffic_text(kb: KnowledgeBase) -> None:
    cited = make_chunk(
        "Điều 6 Khoản 9. Phạt tiền từ 18.000.000 đồng đến 20.000.000 đồng đối với người "
        "điều khiển xe ô tô không chấp hành hiệu lệnh của đèn tín hiệu giao thông.",
        0,
    )
    generic = make_chunk(
        "Người tham gia giao thông phải đi bên phải theo chiều đi của mình, đi đúng làn "
        "đường quy định và chấp hành hệ thống báo hiệu đường bộ.",
        1,
    )

    ranked = rank_for_query([generic, cited], "Điều 6 Khoản 9 phạt bao nhiêu", 8, kb=kb)

    assert ranked[0][0].id == cited.id
    assert all(score < ranked[0][1] for _, score in ranked[1:])
