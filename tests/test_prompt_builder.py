import pytest

from localrag.prompt_builder import NO_CONTEXT_NOTICE, build_prompt
from localrag.rag_service import ChatTurn
from localrag.retriever import ContextFragment


def _fragment(path, start, end, text, score):
    return ContextFragment(id=f"{path}:{start}", document_id=path, path=path, start=start, end=end, text=text, score=score)


def test_prompt_contains_labelled_context_in_retrieval_order():
    fragments = [
        _fragment("/docs/notes.md", 0, 40, "Paris is the capital of France.", 0.9),
        _fragment("/docs/other.md", 10, 30, "Berlin is the capital of Germany.", 0.4),
    ]

    prompt = build_prompt("What is the capital of France?", fragments)

    assert "[source: /docs/notes.md:0-40]\nParis is the capital of France." in prompt
    assert prompt.index("/docs/notes.md:0-40") < prompt.index("/docs/other.md:10-30")
    assert NO_CONTEXT_NOTICE not in prompt
    assert prompt.endswith("Question: What is the capital of France?\n\nAnswer:")


def test_missing_context_is_flagged():
    prompt = build_prompt("Who wrote Hamlet?", [])

    assert NO_CONTEXT_NOTICE in prompt
    assert "[source:" not in prompt


def test_history_is_rendered_before_the_question():
    history = (
        ChatTurn(role="user", content="Hello"),
        ChatTurn(role="assistant", content="Hi, ask me about your files."),
    )

    prompt = build_prompt("What is in notes.md?", [], history)

    assert "Conversation so far:\nUser: Hello\nAssistant: Hi, ask me about your files." in prompt
    assert prompt.index("Conversation so far") < prompt.index("Question: What is in notes.md?")


def test_blank_fragments_are_skipped():
    prompt = build_prompt("q", [_fragment("/docs/a.md", 0, 3, "   ", 0.5)])

    assert "[source:" not in prompt


def test_question_must_not_be_none():
    with pytest.raises(ValueError):
        build_prompt(None, [])  # type: ignore[arg-type]
