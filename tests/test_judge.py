"""Tests for relevance judging and search method comparison."""

import json

import httpx
import pytest

from crate_search.evaluation.comparison import (
    compare_search_methods,
    precision_at_k,
    relevance_flags,
    summarize,
)
from crate_search.evaluation.judge import (
    RelevanceJudge,
    RelevanceJudgmentCache,
    decode_judgments,
)
from crate_search.hybrid.search_manager import SearchManager

from .fakes import FakeCrateStore, FakeRemote, chat_response, crate, make_llm_client


def judgments_reply(relevant):
    """Chat handler judging every listed crate, relevant if in ``relevant``."""
    def reply(payload):
        prompt = payload["messages"][1]["content"]
        names = [
            line.split(". ", 1)[1].split(":", 1)[0]
            for line in prompt.splitlines()
            if line[:1].isdigit()
        ]
        body = {"judgments": [{"crate_name": n, "is_relevant": n in relevant} for n in names]}
        return chat_response("Here you go:\n" + json.dumps(body))
    return reply


def test_precision_at_k():
    flags = [True, False, True, True]
    assert precision_at_k(flags, 1) == 1.0
    assert precision_at_k(flags, 3) == pytest.approx(2 / 3)
    assert precision_at_k(flags, 10) == pytest.approx(3 / 4)
    assert precision_at_k([], 5) == 0.0
    assert precision_at_k(flags, 0) == 0.0


def test_relevance_flags_ignore_case_and_default_false():
    results = [crate("1", "Serde_JSON"), crate("2", "tokio")]
    assert relevance_flags(results, {"serde_json": True}) == [True, False]


def test_decode_judgments_strict():
    content = 'Sure! {"judgments": [{"crate_name": "reqwest", "is_relevant": true, "confidence": 0.9}]} Done.'
    assert decode_judgments(content) == {"reqwest": True}


def test_decode_judgments_salvages_partial_entries():
    """Test entries with a name and boolean verdict survive a bad neighbour."""
    content = json.dumps({"judgments": [
        {"crate_name": "reqwest", "is_relevant": True},
        {"crate_name": "hyper", "is_relevant": "maybe"},
        {"is_relevant": False},
        {"crate_name": "ureq", "is_relevant": False},
    ]})
    assert decode_judgments(content) == {"reqwest": True, "ureq": False}


def test_decode_judgments_ignores_braces_in_surrounding_prose():
    """Test the judgments object is found among other brace-delimited text."""
    content = (
        "Template {crate_name} filled in:\n"
        '{"judgments": [{"crate_name": "serde_json", "is_relevant": true}]}\n'
        "Note: {see above} for details."
    )
    assert decode_judgments(content) == {"serde_json": True}


@pytest.mark.parametrize("content", ["no json here", "{broken", '{"other": []}', "[1, 2]"])
def test_decode_judgments_garbage(content):
    assert decode_judgments(content) == {}


def test_judgment_cache():
    cache = RelevanceJudgmentCache()
    cache.put("json", "Serde_JSON", True)

    assert cache.get("json", "serde_json") is True
    assert cache.get("yaml", "serde_json") is None
    assert cache.lookup_all("json", ["serde_json"]) == {"serde_json": True}
    assert cache.lookup_all("json", ["serde_json", "simd-json"]) is None
    assert len(cache) == 1


def test_judgment_cache_ignores_query_case():
    cache = RelevanceJudgmentCache()
    cache.put("JSON Parser", "serde_json", True)

    assert cache.get("json parser", "serde_json") is True
    assert cache.lookup_all("Json Parser", ["serde_json"]) == {"serde_json": True}


@pytest.mark.asyncio
async def test_judge_batches_and_caches(config):
    remote = FakeRemote(chat_reply=judgments_reply({"c1", "c6"}))
    judge = RelevanceJudge(make_llm_client(config, remote), model="judge-model")
    candidates = [crate(f"c{i}", description="desc") for i in range(7)]

    first = await judge.judge("json", candidates)
    second = await judge.judge("json", candidates)

    assert first == second
    assert {name for name, relevant in first.items() if relevant} == {"c1", "c6"}
    assert len(first) == 7
    # Two batches of at most five, then served from the cache
    assert len(remote.chat_calls) == 2
    assert remote.chat_calls[0]["model"] == "judge-model"


@pytest.mark.asyncio
async def test_judge_reuses_judgments_across_query_case(config):
    """Test queries differing only in case share one remote judgment."""
    remote = FakeRemote(chat_reply=judgments_reply({"serde_json"}))
    judge = RelevanceJudge(make_llm_client(config, remote))
    candidates = [crate("1", "serde_json")]

    first = await judge.judge("JSON Parser", candidates)
    second = await judge.judge("json parser", candidates)

    assert first == second == {"serde_json": True}
    assert len(remote.chat_calls) == 1


@pytest.mark.asyncio
async def test_judge_failed_batch_yields_no_judgments(config):
    def reply(payload):
        if "c5" in payload["messages"][1]["content"]:
            return httpx.Response(500, text="boom")
        return judgments_reply({"c0"})(payload)

    judge = RelevanceJudge(make_llm_client(config, FakeRemote(chat_reply=reply)))

    judgments = await judge.judge("json", [crate(f"c{i}") for i in range(7)])

    assert set(judgments) == {"c0", "c1", "c2", "c3", "c4"}


@pytest.mark.asyncio
async def test_judge_without_credentials_never_raises(offline_config):
    judge = RelevanceJudge(make_llm_client(offline_config, FakeRemote()))
    assert await judge.judge("json", [crate("serde_json")]) == {}
    assert await judge.judge("json", []) == {}


@pytest.mark.asyncio
async def test_compare_search_methods(config, metrics):
    """Test both methods are judged and summarized per query."""
    store = FakeCrateStore(
        text_results=[crate("1", "serde_json", score=0.9), crate("2", "tokio", score=0.1)],
        exact_results=[crate("3", "simd-json", score=1.0), crate("2", "tokio", score=0.5)],
    )
    search_remote = FakeRemote(chat_reply="json")
    manager = SearchManager(
        config,
        store=store,
        llm_client=make_llm_client(config, search_remote),
        metrics=metrics,
    )
    judge = RelevanceJudge(make_llm_client(config, FakeRemote(chat_reply=judgments_reply({"serde_json", "simd-json"}))))

    comparisons = await compare_search_methods(manager, judge, ["json"])

    assert len(comparisons) == 1
    reports = comparisons[0].reports
    assert reports["hybrid"].precision[1] == 1.0
    assert reports["hybrid"].precision[3] == pytest.approx(1 / 2)
    assert reports["traditional"].top_results[0] == "simd-json"
    assert reports["traditional"].relevant_count >= 1

    summary = summarize(comparisons)
    assert set(summary) == {"hybrid", "traditional"}
    assert summary["hybrid"][1] == 1.0
    assert summarize([]) == {}
