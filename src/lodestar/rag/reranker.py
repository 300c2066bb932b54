"""Second-stage rerankers: reorder candidates by query relevance, keep the top n.

Rerankers raise on failure; the retrieval pipeline catches that and keeps the
similarity order.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod

from lodestar.db.models import ScoredChunk
from lodestar.rag.llm_client import complete, rerank


class Reranker(ABC):
    name: str = ""

    @abstractmethod
    def rerank(self, query: str, candidates: list[ScoredChunk], n_final: int) -> list[ScoredChunk]:
        """Return at most *n_final* candidates, most relevant first.

        Each returned candidate carries its score in ``extra["rerank_score"]``.
        """


# ------------------------------------------------------------------
# LLM judge
# ------------------------------------------------------------------

_SCORE_SYSTEM = (
    "You are a relevance judge for code search. For each numbered snippet, output "
    "a JSON array of integers (0-10) indicating how useful the snippet is for "
    "answering the query. 10 = directly relevant, 0 = unrelated. "
    "Output ONLY a JSON array of integers, no explanations."
)


class LLMJudgeReranker(Reranker):
    """Batched 0-10 relevance scores from a chat model.

    Ties keep the incoming (similarity) order.
    """

    name = "llm"

    def __init__(self, model: str = "openai/gpt-4o-mini", batch_size: int = 20) -> None:
        self.model = model
        self.batch_size = batch_size

    def rerank(self, query: str, candidates: list[ScoredChunk], n_final: int) -> list[ScoredChunk]:
        if not candidates:
            return []
        scores: list[int] = []
        for start in range(0, len(candidates), self.batch_size):
            batch = candidates[start : start + self.batch_size]
            scores.extend(self._score_batch(query, batch))
        for sc, score in zip(candidates, scores):
            sc.extra["rerank_score"] = score
        ranked = sorted(candidates, key=lambda sc: sc.extra["rerank_score"], reverse=True)
        return ranked[:n_final]

    def _score_batch(self, query: str, batch: list[ScoredChunk]) -> list[int]:
        snippets = "\n\n".join(
            f"[{i + 1}] {sc.chunk.filepath} ({sc.chunk.start_line}-{sc.chunk.end_line})\n"
            f"{sc.chunk.content[:800]}"
            for i, sc in enumerate(batch)
        )
        raw = complete(
            model=self.model,
            messages=[
                {"role": "system", "content": _SCORE_SYSTEM},
                {"role": "user", "content": f"Query: {query}\n\nSnippets:\n{snippets}"},
            ],
            max_tokens=256,
            temperature=0,
        )
        return _parse_score_array(raw, expected_length=len(batch))


def _parse_score_array(raw: str, expected_length: int) -> list[int]:
    """Parse an LLM response as a JSON array of ints clamped to 0-10.

    Raises:
        ValueError: If no array of the expected length can be found.
    """
    try:
        start = raw.index("[")
        end = raw.rindex("]") + 1
        arr = json.loads(raw[start:end])
        if isinstance(arr, list) and len(arr) == expected_length:
            return [max(0, min(10, int(v))) for v in arr]
    except (ValueError, json.JSONDecodeError, TypeError):
        pass
    raise ValueError(f"Could not parse {expected_length} relevance scores from: {raw[:200]!r}")


# ------------------------------------------------------------------
# Cross-encoder
# ------------------------------------------------------------------


class CrossEncoderReranker(Reranker):
    """Hosted cross-encoder via ``litellm.rerank`` (e.g. cohere/rerank-english-v3.0)."""

    name = "cross-encoder"

    def __init__(self, model: str = "cohere/rerank-english-v3.0") -> None:
        self.model = model

    def rerank(self, query: str, candidates: list[ScoredChunk], n_final: int) -> list[ScoredChunk]:
        if not candidates:
            return []
        ranked = rerank(
            self.model,
            query,
            [sc.chunk.content for sc in candidates],
            top_n=min(n_final, len(candidates)),
        )
        out: list[ScoredChunk] = []
        for index, score in ranked[:n_final]:
            sc = candidates[index]
            sc.extra["rerank_score"] = score
            out.append(sc)
        return out


def build_reranker(kind: str, model: str) -> Reranker:
    if kind == "llm":
        return LLMJudgeReranker(model)
    if kind == "cross-encoder":
        return CrossEncoderReranker(model)
    raise ValueError(f"Unknown reranker '{kind}'")
