"""Relevance judgments from the remote chat capability.

Results are judged in small batches. Each answer is decoded strictly into
``JudgmentResponse`` first; when that fails, entries that still carry a crate
name and a boolean verdict are salvaged one by one. A batch that cannot be
judged at all contributes nothing, and ``judge`` never raises.
"""

import json
from typing import Any, Dict, Iterable, List, Optional, Sequence

import structlog
from pydantic import BaseModel, ValidationError

from ..intelligence.llm_client import LLMClient, RemoteCapabilityError
from ..models import Candidate

logger = structlog.get_logger("evaluation.judge")

JUDGE_BATCH_SIZE = 5

JUDGE_SYSTEM_PROMPT = (
    "You are a Rust programming assistant who evaluates how relevant search "
    "results are to a query. Judge each crate from the query and the crate "
    "description."
)


class RelevanceJudgment(BaseModel):
    crate_name: str
    is_relevant: bool
    confidence: Optional[float] = None
    reasoning: Optional[str] = None


class JudgmentResponse(BaseModel):
    judgments: List[RelevanceJudgment]


def _find_judgment_object(content: str) -> Optional[Dict[str, Any]]:
    """Return the first JSON object in ``content`` that has a ``judgments`` key.

    Every ``{`` is tried as the start of a JSON value, so prose around the
    object (braces included) does not prevent decoding.
    """
    decoder = json.JSONDecoder()
    idx = content.find("{")
    while idx != -1:
        try:
            value, _ = decoder.raw_decode(content, idx)
        except ValueError:
            value = None
        if isinstance(value, dict) and "judgments" in value:
            return value
        idx = content.find("{", idx + 1)
    return None


def decode_judgments(content: str) -> Dict[str, bool]:
    """Decode a judge answer into ``{crate_name: is_relevant}``.

    Returns an empty mapping when nothing usable is found.
    """
    value = _find_judgment_object(content)
    if value is None:
        return {}

    try:
        parsed = JudgmentResponse.model_validate(value)
        return {j.crate_name: j.is_relevant for j in parsed.judgments}
    except ValidationError as e:
        logger.warning("Strict judgment decode failed, salvaging entries", error=str(e))

    entries = value["judgments"]
    if not isinstance(entries, list):
        return {}

    salvaged: Dict[str, bool] = {}
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        name = entry.get("crate_name")
        relevant = entry.get("is_relevant")
        if isinstance(name, str) and isinstance(relevant, bool):
            salvaged[name] = relevant
    return salvaged


class RelevanceJudgmentCache:
    """Judgments keyed by lowercased query and lowercased crate name."""

    def __init__(self):
        self._entries: Dict[str, Dict[str, bool]] = {}

    def get(self, query: str, crate_name: str) -> Optional[bool]:
        return self._entries.get(query.lower(), {}).get(crate_name.lower())

    def put(self, query: str, crate_name: str, is_relevant: bool) -> None:
        self._entries.setdefault(query.lower(), {})[crate_name.lower()] = is_relevant

    def lookup_all(self, query: str, crate_names: Iterable[str]) -> Optional[Dict[str, bool]]:
        """Return judgments for every name, or ``None`` if any is uncached."""
        cached = self._entries.get(query.lower())
        if cached is None:
            return None

        result: Dict[str, bool] = {}
        for name in crate_names:
            verdict = cached.get(name.lower())
            if verdict is None:
                return None
            result[name] = verdict
        return result

    def __len__(self) -> int:
        return sum(len(v) for v in self._entries.values())


class RelevanceJudge:
    """Asks the chat capability which results are relevant to a query.

    Parameters
    - llm_client: remote chat capability
    - cache: shared judgment cache; a private one when omitted
    - model: chat model used for judging
    - batch_size: results per remote call
    """

    def __init__(
        self,
        llm_client: LLMClient,
        cache: Optional[RelevanceJudgmentCache] = None,
        model: Optional[str] = None,
        batch_size: int = JUDGE_BATCH_SIZE,
    ):
        self.llm_client = llm_client
        self.cache = cache or RelevanceJudgmentCache()
        self.model = model
        self.batch_size = batch_size

    async def judge(self, query: str, candidates: Sequence[Candidate]) -> Dict[str, bool]:
        """Return ``{crate_name: is_relevant}`` for the judged candidates.

        Names the judge did not answer for are absent from the mapping.
        """
        if not candidates:
            return {}

        cached = self.cache.lookup_all(query, [c.name for c in candidates])
        if cached is not None:
            logger.debug("Judgments served from cache", query=query, count=len(cached))
            return cached

        judgments: Dict[str, bool] = {}
        for start in range(0, len(candidates), self.batch_size):
            batch = candidates[start:start + self.batch_size]
            judgments.update(await self._judge_batch(query, batch))

        logger.info("Relevance judged", query=query, requested=len(candidates), judged=len(judgments))
        return judgments

    async def _judge_batch(self, query: str, batch: Sequence[Candidate]) -> Dict[str, bool]:
        try:
            content = await self.llm_client.chat(
                JUDGE_SYSTEM_PROMPT,
                self._build_prompt(query, batch),
                temperature=0.0,
                model=self.model,
            )
        except RemoteCapabilityError as e:
            logger.warning("Judgment batch failed", query=query, batch_size=len(batch), error=str(e))
            return {}

        judgments = decode_judgments(content)
        if not judgments:
            logger.warning("Judgment batch returned nothing usable", query=query, content=content[:200])
        for name, is_relevant in judgments.items():
            self.cache.put(query, name, is_relevant)
        return judgments

    @staticmethod
    def _build_prompt(query: str, batch: Sequence[Candidate]) -> str:
        lines = [f'Query: "{query}"', "", "Search results:"]
        for i, candidate in enumerate(batch, 1):
            lines.append(f"{i}. {candidate.name}: {candidate.description or '(no description)'}")
        example: Dict[str, Any] = {
            "judgments": [{
                "crate_name": "crate name",
                "is_relevant": True,
                "confidence": 0.9,
                "reasoning": "short reason",
            }]
        }
        lines.append("")
        lines.append(
            "Judge every crate and answer with JSON shaped like "
            f"{json.dumps(example)}. Return only the JSON."
        )
        return "\n".join(lines)
