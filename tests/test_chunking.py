import pytest

from localrag.ingest.chunking import ChunkingConfig, chunk_offsets, chunk_text
from localrag.ingest.models import chunk_id_for


def _reassemble(chunks, overlap):
    pieces = []
    previous_end = 0
    for chunk in chunks:
        pieces.append(chunk.text[previous_end - chunk.start :] if pieces else chunk.text)
        previous_end = chunk.end
    return "".join(pieces)


@pytest.mark.parametrize(
    "text, chunk_size, overlap",
    [
        ("a", 5, 0),
        ("abcdefghij", 5, 0),
        ("abcdefghijk", 5, 2),
        ("Paris is the capital of France. Rust is a systems language.", 40, 10),
        ("x" * 1001, 1000, 200),
        ("línea uno\nlínea dos\n\tfin", 7, 6),
    ],
)
def test_chunks_reassemble_to_original_text(text, chunk_size, overlap):
    config = ChunkingConfig(chunk_size=chunk_size, overlap=overlap)
    chunks = list(chunk_text("doc", text, config))

    assert _reassemble(chunks, overlap) == text
    assert chunks[0].start == 0
    assert chunks[-1].end == len(text)
    for previous, current in zip(chunks, chunks[1:]):
        assert current.start - previous.start == config.step
    assert len(chunk_text("doc", text, config)) == len(chunks)


def test_empty_text_yields_no_chunks():
    sequence = chunk_text("doc", "", ChunkingConfig(chunk_size=10, overlap=2))

    assert list(sequence) == []
    assert len(sequence) == 0


def test_final_chunk_is_clipped_not_padded():
    config = ChunkingConfig(chunk_size=4, overlap=1)

    assert list(chunk_offsets(10, config)) == [(0, 4), (3, 7), (6, 10)]
    assert list(chunk_offsets(11, config)) == [(0, 4), (3, 7), (6, 10), (9, 11)]


def test_sequence_is_restartable_and_deterministic():
    sequence = chunk_text("doc-1", "The quick brown fox jumps over the lazy dog", ChunkingConfig(10, 3))

    first = [(chunk.id, chunk.start, chunk.end, chunk.content_hash) for chunk in sequence]
    second = [(chunk.id, chunk.start, chunk.end, chunk.content_hash) for chunk in sequence]

    assert first == second
    assert first[1][0] == chunk_id_for("doc-1", 1)


def test_chunk_ids_depend_on_position_not_text():
    config = ChunkingConfig(chunk_size=5, overlap=0)
    before = list(chunk_text("doc", "aaaaabbbbb", config))
    after = list(chunk_text("doc", "aaaaaccccc", config))

    assert [chunk.id for chunk in before] == [chunk.id for chunk in after]
    assert before[0].content_hash == after[0].content_hash
    assert before[1].content_hash != after[1].content_hash


def test_notes_scenario_produces_two_chunks():
    text = "Paris is the capital of France. Rust is a systems language."
    chunks = list(chunk_text("notes", text, ChunkingConfig(chunk_size=40, overlap=10)))

    assert [(chunk.start, chunk.end) for chunk in chunks] == [(0, 40), (30, len(text))]


@pytest.mark.parametrize("chunk_size, overlap", [(10, 10), (10, 11), (0, 0), (10, -1)])
def test_invalid_configuration_is_rejected(chunk_size, overlap):
    with pytest.raises(ValueError):
        ChunkingConfig(chunk_size=chunk_size, overlap=overlap)
