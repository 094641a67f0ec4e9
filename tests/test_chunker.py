import random
import string

import pytest

from docqa.chunker import Chunker, ChunkingConfig, chunk_text
from docqa.models import Document


def generate_text(words: int = 200) -> str:
    rng = random.Random(42)
    alphabet = string.ascii_letters + "абвгдежзийклмнопрстуфхцчшщъьюя"
    tokens = []
    for _ in range(words):
        length = rng.randint(3, 12)
        tokens.append("".join(rng.choice(alphabet) for _ in range(length)))
    return " ".join(tokens)


def test_chunk_starts_advance_by_size_minus_overlap() -> None:
    text = "x" * 2500

    chunks = chunk_text(text, chunk_size=1000, overlap=200, document_id="doc-1")

    assert [chunk.char_start for chunk in chunks] == [0, 800, 1600, 2400]
    assert [len(chunk.text) for chunk in chunks] == [1000, 1000, 900, 100]
    assert [chunk.chunk_index for chunk in chunks] == [0, 1, 2, 3]
    assert all(chunk.document_id == "doc-1" for chunk in chunks)


def test_empty_text_yields_no_chunks() -> None:
    assert chunk_text("", chunk_size=100, overlap=10) == []


def test_short_text_yields_single_chunk() -> None:
    chunks = chunk_text("hello world", chunk_size=100, overlap=10)

    assert len(chunks) == 1
    assert chunks[0].text == "hello world"
    assert (chunks[0].char_start, chunks[0].char_end) == (0, 11)


@pytest.mark.parametrize(
    "chunk_size, overlap",
    [(0, 0), (-5, 0), (100, -1), (100, 100), (100, 150)],
)
def test_invalid_parameters_raise_value_error(chunk_size: int, overlap: int) -> None:
    with pytest.raises(ValueError):
        chunk_text("some text", chunk_size=chunk_size, overlap=overlap)


@pytest.mark.parametrize("snap", [False, True])
def test_chunks_cover_entire_input(snap: bool) -> None:
    text = generate_text(120)

    chunks = chunk_text(text, chunk_size=80, overlap=15, snap_to_whitespace=snap)

    assert chunks[0].char_start == 0
    assert chunks[-1].char_end == len(text)
    coverage = [False] * len(text)
    for chunk in chunks:
        assert text[chunk.char_start : chunk.char_end] == chunk.text
        for index in range(chunk.char_start, chunk.char_end):
            coverage[index] = True
    assert all(coverage)


@pytest.mark.parametrize("snap", [False, True])
def test_consecutive_chunks_overlap_by_at_most_overlap(snap: bool) -> None:
    text = generate_text(80)

    chunks = chunk_text(text, chunk_size=60, overlap=10, snap_to_whitespace=snap)

    for current, nxt in zip(chunks, chunks[1:]):
        assert nxt.char_start > current.char_start
        assert current.char_end >= nxt.char_start
        assert current.char_end - nxt.char_start <= 10


def test_snapping_ends_windows_after_whitespace() -> None:
    text = generate_text(60)

    chunks = chunk_text(text, chunk_size=50, overlap=5, snap_to_whitespace=True)

    interior = [chunk for chunk in chunks if chunk.char_end < len(text)]
    assert interior
    for chunk in interior:
        assert chunk.text[-1].isspace()


def test_chunking_is_deterministic() -> None:
    text = generate_text(150)

    first = chunk_text(text, chunk_size=70, overlap=20, document_id="a", metadata={"lang": "en"})
    second = chunk_text(text, chunk_size=70, overlap=20, document_id="a", metadata={"lang": "en"})

    assert first == second


def test_chunk_metadata_carries_position_and_document_metadata() -> None:
    chunks = chunk_text("a" * 30, chunk_size=20, overlap=5, document_id="doc", metadata={"source": "upload"})

    second = chunks[1]
    assert second.metadata == {
        "source": "upload",
        "document_id": "doc",
        "chunk_index": 1,
        "char_start": 15,
        "char_end": 30,
    }


def test_chunker_adds_mime_type_from_document() -> None:
    chunker = Chunker(ChunkingConfig(chunk_size=10, overlap=2))
    document = Document(document_id="d", mime_type="text/markdown", raw_text="# Title\nSome body text")

    chunks = chunker.split(document)

    assert chunks
    assert all(chunk.metadata["mime_type"] == "text/markdown" for chunk in chunks)


def test_chunking_config_validates_on_creation() -> None:
    with pytest.raises(ValueError):
        ChunkingConfig(chunk_size=10, overlap=10)
