"""Tests for token-aware chunking."""

from coachkb.core.chunker import chunk_document, count_tokens, last_n_tokens, preview_chunks


def test_count_tokens_uses_given_encoding(word_encoding):
    assert count_tokens("one two three", word_encoding) == 3


def test_last_n_tokens(word_encoding):
    assert last_n_tokens("a b c d e", 2, word_encoding) == "d e"
    assert last_n_tokens("a b c d e", 0, word_encoding) == ""


def test_short_document_is_a_single_chunk(word_encoding):
    # Kept although below min_chunk_size: a lone short document still contributes one chunk
    chunks = chunk_document("  Short note about naps.  ", encoding=word_encoding)

    assert len(chunks) == 1
    assert chunks[0].index == 0
    assert chunks[0].text == "Short note about naps."
    assert chunks[0].token_count == 4


def test_empty_document_has_no_chunks(word_encoding):
    assert chunk_document("", encoding=word_encoding) == []
    assert chunk_document("\n\n\n\n", encoding=word_encoding) == []


def test_paragraphs_are_packed_with_overlap(word_encoding):
    text = "a1 a2 a3 a4\n\nb1 b2 b3 b4\n\nc1 c2 c3 c4"

    chunks = chunk_document(text, max_chunk_size=10, min_chunk_size=1, overlap_size=2, encoding=word_encoding)

    assert [c.index for c in chunks] == [0, 1]
    assert chunks[0].text == "a1 a2 a3 a4\n\nb1 b2 b3 b4"
    assert chunks[0].token_count == 8
    assert chunks[1].text == "b3 b4\n\nc1 c2 c3 c4"
    assert all(c.token_count <= 10 for c in chunks)


def test_short_tail_is_dropped(word_encoding):
    text = "a1 a2 a3 a4\n\nb1 b2 b3 b4\n\nc1 c2 c3 c4"

    chunks = chunk_document(text, max_chunk_size=10, min_chunk_size=10, overlap_size=2, encoding=word_encoding)

    assert len(chunks) == 1
    assert chunks[0].text.startswith("a1")


def test_oversized_paragraph_is_split_by_sentence(word_encoding):
    text = "x1 x2.\n\nOne two three. Four five six. Seven eight nine."

    chunks = chunk_document(text, max_chunk_size=5, min_chunk_size=1, overlap_size=0, encoding=word_encoding)

    assert [c.text for c in chunks] == [
        "x1 x2.",
        "One two three.",
        "Four five six.",
        "Seven eight nine.",
    ]
    assert [c.index for c in chunks] == [0, 1, 2, 3]


def test_sentence_chunks_carry_overlap(word_encoding):
    text = "One two three. Four five six. Seven eight nine."

    chunks = chunk_document(text, max_chunk_size=5, min_chunk_size=1, overlap_size=1, encoding=word_encoding)

    assert chunks[0].text == "One two three."
    assert chunks[1].text.startswith("three.")
    assert "Four five six." in chunks[1].text


def test_char_offsets_are_non_negative(word_encoding):
    text = "\n\n".join(f"para{i} " + "word " * 5 for i in range(6))

    chunks = chunk_document(text, max_chunk_size=12, min_chunk_size=1, overlap_size=0, encoding=word_encoding)

    assert len(chunks) > 1
    for chunk in chunks:
        assert chunk.start_char >= 0
        assert chunk.end_char > chunk.start_char


def test_preview_chunks_truncates_long_previews(word_encoding):
    text = "word " * 60

    preview = preview_chunks(text, max_chunk_size=100, encoding=word_encoding)

    assert preview["total_chunks"] == 1
    assert preview["avg_tokens_per_chunk"] == 60
    assert preview["chunks"][0]["tokens"] == 60
    assert preview["chunks"][0]["preview"].endswith("...")
    assert len(preview["chunks"][0]["preview"]) == 203


def test_preview_of_empty_document(word_encoding):
    assert preview_chunks("", encoding=word_encoding) == {
        "total_chunks": 0,
        "avg_tokens_per_chunk": 0,
        "chunks": []
    }


def test_chunk_offsets_point_at_paragraphs(word_encoding):
    text = "a1 a2 a3\n\nb1 b2 b3"

    first, second = chunk_document(text, max_chunk_size=5, min_chunk_size=1, overlap_size=0, encoding=word_encoding)

    assert (first.start_char, first.end_char) == (0, 8)
    assert (second.start_char, second.end_char) == (10, 18)
    assert text[second.start_char:second.end_char] == second.text
