"""Utilities for constructing grounded prompts."""
from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, List, Sequence

if TYPE_CHECKING:  # pragma: no cover - import for type checking only
    from localrag.rag_service import ChatTurn
    from localrag.retriever import ContextFragment

_PROMPTS_DIR = Path(__file__).resolve().parent / "prompts"
_SYSTEM_PROMPT_PATH = _PROMPTS_DIR / "system.txt"
_USER_PROMPT_PATH = _PROMPTS_DIR / "user.md"

NO_CONTEXT_NOTICE = "NOTE: no matching context found in the indexed documents."


def _load_template(path: Path) -> str:
    """Read and trim the contents of a template file."""
    return path.read_text(encoding="utf-8").strip()


_SYSTEM_TEXT = _load_template(_SYSTEM_PROMPT_PATH)
_USER_TEMPLATE = _load_template(_USER_PROMPT_PATH)


def source_label(fragment: "ContextFragment") -> str:
    return f"{fragment.path}:{fragment.start}-{fragment.end}"


def build_prompt(
    question: str,
    fragments: Sequence["ContextFragment"],
    history: Sequence["ChatTurn"] = (),
) -> str:
    """Compose the single prompt sent to the completion provider.

    Context passages keep retrieval order. When there are none the prompt
    says so explicitly.
    """

    if question is None:
        raise ValueError("question must not be None")

    context_sections: List[str] = []
    for fragment in fragments:
        content = fragment.text.strip()
        if not content:
            continue
        context_sections.append(f"[source: {source_label(fragment)}]\n{content}")

    if context_sections:
        contexts_block = "Context:\n\n" + "\n\n".join(context_sections)
    else:
        contexts_block = NO_CONTEXT_NOTICE

    sections = [_SYSTEM_TEXT, contexts_block]
    if history:
        lines = [f"{turn.role.capitalize()}: {turn.content.strip()}" for turn in history]
        sections.append("Conversation so far:\n" + "\n".join(lines))
    sections.append(_USER_TEMPLATE.format(question=question.strip()))
    return "\n\n".join(sections).strip()


__all__ = ["NO_CONTEXT_NOTICE", "build_prompt", "source_label"]
