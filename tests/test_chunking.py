import pytest

from services.doc_sync.chunking import split_text


def test_short_text_is_single_trimmed_chunk():
    assert split_text("  Annual leave is 15 days.  ") == ["Annual leave is 15 days."]


def test_blank_text_has_no_chunks():
    assert split_text("") == []
    assert split_text("   \n\n  ") == []


def test_hard_cut_without_boundaries_uses_overlap():
    text = "a" * 1000

    chunks = split_text(text)

    assert chunks == [text[0:800], text[720:1000]]


def test_paragraph_break_is_preferred():
    text = "A" * 500 + "\n\n" + "B" * 500

    chunks = split_text(text)

    assert chunks == ["A" * 500, "A" * 80 + "\n\n" + "B" * 500]


def test_sentence_end_keeps_the_period():
    text = "x" * 700 + ". " + "y" * 300

    chunks = split_text(text)

    assert chunks[0] == "x" * 700 + "."
    assert chunks[1].startswith("x" * 79 + ". ")
    assert chunks[1].endswith("y" * 300)


def test_chunks_never_exceed_max_size():
    text = "\n".join(f"Article {i}. Employees receive benefit number {i} after review." for i in range(200))

    chunks = split_text(text, max_size=300, overlap=30)

    assert len(chunks) > 1
    assert all(0 < len(chunk) <= 300 for chunk in chunks)


@pytest.mark.parametrize("max_size, overlap", [(0, 0), (100, 100), (100, -1), (50, 80)])
def test_invalid_parameters_raise(max_size, overlap):
    with pytest.raises(ValueError):
        split_text("some text", max_size=max_size, overlap=overlap)
