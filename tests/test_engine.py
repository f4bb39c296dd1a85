from typing import Any, Dict, List

import pytest

from siftly.config import SearchConfig, Settings
from siftly.exceptions import IndexUnavailableError, InvalidRequestError
from siftly.search.aggregator import SearchRequest
from siftly.search.engine import SearchEngine, initialize
from siftly.search.fields import EntityType, Scope
from siftly.search.matcher import Matcher
from siftly.search.scorer import MatchSpan

FIELDS = {
    "task": [("name", 2), ("description", 1)],
    "list": [("name", 2)],
    "label": [("name", 2)],
}

# ---------- Helpers ----------


def make_snapshot() -> Dict[str, List[Dict[str, Any]]]:
    return {
        "task": [
            {
                "id": "t1",
                "name": "Complete project proposal",
                "description": "Write the Q1 project proposal",
            },
            {"id": "t2", "name": "Review code changes", "description": "Review pull requests"},
            {"id": "t3", "name": "Buy groceries", "description": "Get milk and eggs"},
        ],
        "list": [{"id": "l1", "name": "Work Tasks"}],
        "label": [{"id": "b1", "name": "Important"}, {"id": "b2", "name": "Later"}],
    }


def make_engine(snapshot: Any = None, **search: Any) -> SearchEngine:
    settings = Settings(search=SearchConfig(**search))
    return initialize(FIELDS, make_snapshot() if snapshot is None else snapshot, settings=settings)


# ---------- Concrete scenarios ----------


def test_single_record_per_type_matches_only_the_task() -> None:
    engine = make_engine(
        {
            "task": [{"id": "t1", "name": "Complete project proposal"}],
            "list": [{"id": "l1", "name": "Work Tasks"}],
            "label": [{"id": "b1", "name": "Important"}],
        }
    )
    result = engine.search("project", scope="all")

    assert result.total == 1
    (hit,) = result.merged
    assert hit.type is EntityType.TASK
    assert hit.id == "t1"
    assert hit.matches == (MatchSpan("name", 9, 16),)
    assert result.results(EntityType.LIST) == ()
    assert result.results(EntityType.LABEL) == ()


@pytest.mark.parametrize("query", ["", "   ", "p", None])
def test_empty_or_short_query_returns_empty_result(query: Any) -> None:
    result = make_engine().search(query)
    assert result.total == 0
    assert dict(result.per_type) == {}
    assert result.merged == ()
    assert result.rejected is not None


def test_typo_still_matches() -> None:
    result = make_engine().search("projct")
    assert [r.id for r in result.results(EntityType.TASK)] == ["t1"]


def test_per_type_limit_truncates_and_total_counts_returned() -> None:
    tasks = [{"id": f"t{i}", "name": f"Test task {i}"} for i in range(20)]
    engine = make_engine({"task": tasks, "list": [], "label": []})

    result = engine.search("Test", limit_per_type=5)

    assert len(result.results(EntityType.TASK)) == 5
    assert result.total == 5
    assert [r.id for r in result.results(EntityType.TASK)] == ["t0", "t1", "t2", "t3", "t4"]


def test_record_without_description_matches_on_name() -> None:
    snapshot = {
        "task": [
            {"id": "a", "name": "Quarterly report"},
            {"id": "b", "name": "Beta", "description": "report for finance"},
        ]
    }
    result = make_engine(snapshot).search("report", scope="tasks")

    by_id = {r.id: r for r in result.results(EntityType.TASK)}
    assert set(by_id) == {"a", "b"}
    assert {m.field_key for m in by_id["a"].matches} == {"name"}


# ---------- Properties ----------


@pytest.mark.parametrize("query", ["project", "review", "importnt", "work", "later", "eggs"])
def test_search_is_deterministic_and_bounded(query: str) -> None:
    engine = make_engine()
    first = engine.search(query)
    second = engine.search(query)

    assert first == second
    for result in first.merged:
        assert 0.0 <= result.score <= 1.0


@pytest.mark.parametrize("query", ["project", "review", "importnt", "grocery", "work"])
def test_every_result_has_a_field_within_threshold(query: str) -> None:
    engine = make_engine()
    matcher = Matcher(threshold=0.4)
    for result in engine.search(query).merged:
        costs = [
            outcome.cost
            for value in result.values.values()
            if (outcome := matcher.match(query, value)) is not None
        ]
        assert costs and min(costs) <= 0.4


def test_limit_total_keeps_globally_best_results() -> None:
    snapshot = {
        "task": [{"id": "t1", "name": "Projct plan"}],
        "list": [],
        "label": [{"id": "b1", "name": "project"}],
    }
    engine = make_engine(snapshot)

    unlimited = engine.search("project")
    assert unlimited.total == 2
    assert [r.type for r in unlimited.merged] == [EntityType.LABEL, EntityType.TASK]

    limited = engine.search("project", limit_total=1)
    assert limited.total == 1
    assert limited.results(EntityType.TASK) == ()
    assert [r.id for r in limited.results(EntityType.LABEL)] == ["b1"]


def test_limits_hold_across_types() -> None:
    snapshot = {
        "task": [{"id": f"t{i}", "name": f"Work item {i}"} for i in range(6)],
        "list": [{"id": f"l{i}", "name": f"Work list {i}"} for i in range(6)],
        "label": [{"id": f"b{i}", "name": f"work {i}"} for i in range(6)],
    }
    result = make_engine(snapshot).search("work", limit_per_type=4, limit_total=7)

    assert result.total == 7
    assert len(result.merged) == 7
    for entity_type in EntityType:
        assert len(result.results(entity_type)) <= 4
    assert sum(len(v) for v in result.per_type.values()) == result.total


def test_equal_scores_follow_type_priority_then_collection_order() -> None:
    snapshot = {
        "label": [{"id": "b1", "name": "work"}],
        "list": [{"id": "l1", "name": "Work"}, {"id": "l2", "name": "Work"}],
        "task": [{"id": "t1", "name": "Work"}],
    }
    result = make_engine(snapshot).search("work")
    assert [r.id for r in result.merged] == ["t1", "l1", "l2", "b1"]

    reordered = initialize(
        {"label": [("name", 2)], "task": [("name", 2)], "list": [("name", 2)]},
        snapshot,
        settings=Settings(),
    )
    assert [r.id for r in reordered.search("work").merged] == ["b1", "t1", "l1", "l2"]


@pytest.mark.parametrize(
    "scope,expected",
    [
        (Scope.TASKS, EntityType.TASK),
        (Scope.LISTS, EntityType.LIST),
        (Scope.LABELS, EntityType.LABEL),
    ],
)
def test_scope_isolation(scope: Scope, expected: EntityType) -> None:
    snapshot = {
        "task": [{"id": "t", "name": "Work"}],
        "list": [{"id": "l", "name": "Work"}],
        "label": [{"id": "b", "name": "Work"}],
    }
    result = make_engine(snapshot).search("work", scope=scope)

    assert list(result.per_type) == [expected]
    assert {r.type for r in result.merged} == {expected}


def test_refresh_is_idempotent_and_swaps_indexes() -> None:
    engine = make_engine()
    before = engine.indexes
    engine.refresh_index(make_snapshot())
    engine.refresh_index(make_snapshot())
    after = engine.indexes

    assert after is not before
    for entity_type in EntityType:
        assert after[entity_type].entries == before[entity_type].entries


def test_refresh_reflects_mutations() -> None:
    engine = make_engine()
    assert engine.search("dentist").total == 0

    snapshot = make_snapshot()
    snapshot["task"].append({"id": "t4", "name": "Call the dentist"})
    engine.refresh_index(snapshot)

    assert [r.id for r in engine.search("dentist").merged] == ["t4"]


def test_refresh_ignores_unknown_collections(caplog: pytest.LogCaptureFixture) -> None:
    snapshot: Dict[str, Any] = make_snapshot()
    snapshot["projects"] = [{"id": "p1", "name": "project"}]
    engine = make_engine(snapshot)

    assert "projects" in caplog.text
    assert engine.search("project").results(EntityType.TASK)


def test_empty_snapshot_searches_return_nothing() -> None:
    result = make_engine({}).search("project")
    assert result.total == 0
    assert result.rejected is None


# ---------- Lifecycle and validation errors ----------


def test_search_before_initialize_fails_loudly() -> None:
    engine = SearchEngine(FIELDS, settings=Settings())
    assert not engine.ready
    with pytest.raises(IndexUnavailableError):
        engine.search("project")
    with pytest.raises(IndexUnavailableError):
        engine.quick_search("project")


@pytest.mark.parametrize(
    "kwargs",
    [
        {"limit_per_type": 0},
        {"limit_total": -1},
        {"limit_total": 5000},
        {"scope": "projects"},
        {"threshold": 1.5},
        {"unknown": True},
    ],
)
def test_invalid_requests_are_rejected(kwargs: Dict[str, Any]) -> None:
    with pytest.raises(InvalidRequestError):
        make_engine().search("project", **kwargs)


def test_overlong_query_is_rejected() -> None:
    engine = make_engine(max_query_length=10)
    with pytest.raises(InvalidRequestError):
        engine.search("a much longer query than allowed")


def test_scope_for_undeclared_type_is_rejected() -> None:
    engine = initialize({"task": ["name"]}, make_snapshot(), settings=Settings())
    with pytest.raises(InvalidRequestError):
        engine.search("work", scope="lists")


def test_request_object_and_keyword_overrides_do_not_mix() -> None:
    engine = make_engine()
    request = SearchRequest(query="project")
    assert engine.search(request).total == 1
    with pytest.raises(InvalidRequestError):
        engine.search(request, limit_total=1)


# ---------- Soft deletion and thresholds ----------


def test_soft_deleted_records_are_hidden_by_default() -> None:
    snapshot = {
        "task": [
            {"id": "open", "name": "Plan sprint"},
            {"id": "done", "name": "Plan sprint", "is_completed": True},
        ]
    }
    engine = make_engine(snapshot)

    assert [r.id for r in engine.search("sprint").merged] == ["open"]
    included = engine.search("sprint", include_soft_deleted=True)
    assert [r.id for r in included.merged] == ["open", "done"]


def test_threshold_override_per_request() -> None:
    engine = make_engine()
    assert engine.search("projct", threshold=0.0).total == 0
    assert engine.search("projct", threshold=0.4).total == 1


# ---------- Quick search and suggestions ----------


def test_quick_search_uses_small_per_type_limit() -> None:
    tasks = [{"id": f"t{i}", "name": f"Report {i}"} for i in range(12)]
    result = make_engine({"task": tasks}).quick_search("report")

    assert len(result.results(EntityType.TASK)) == 5
    assert result.total == 5


def test_quick_search_is_looser_than_search() -> None:
    engine = make_engine({"label": [{"id": "b1", "name": "Important"}]})
    # Four substitutions over nine characters cost 0.44
    assert engine.search("ixxxxtant").total == 0
    assert engine.quick_search("ixxxxtant").total == 1


def test_suggestions_return_distinct_matched_values() -> None:
    snapshot = make_snapshot()
    snapshot["task"].append({"id": "t5", "name": "Complete project proposal"})
    suggestions = make_engine(snapshot).suggestions("proj")

    assert "Complete project proposal" in suggestions
    assert len(suggestions) == len(set(suggestions))
    assert len(suggestions) <= 10


def test_suggestions_are_capped() -> None:
    tasks = [{"id": f"t{i}", "name": f"Sprint {i}"} for i in range(5)]
    lists = [{"id": f"l{i}", "name": f"Sprint list {i}"} for i in range(5)]
    labels = [{"id": f"b{i}", "name": f"sprint-{i}"} for i in range(5)]
    suggestions = make_engine({"task": tasks, "list": lists, "label": labels}).suggestions("sprint")
    assert len(suggestions) == 10


def test_suggestions_ignore_short_input() -> None:
    assert make_engine().suggestions("p") == []
    assert make_engine().suggestions(None) == []


# ---------- Exact lookup and highlighting ----------


def test_search_exact_ignores_case_and_spacing() -> None:
    engine = make_engine()
    (hit,) = engine.search_exact("task", "name", "  BUY   groceries ")

    assert hit.id == "t3"
    assert hit.score == 0.0
    assert hit.matches == (MatchSpan("name", 0, 13),)
    assert engine.search_exact(EntityType.TASK, "name", "Buy") == []


def test_search_exact_rejects_undeclared_fields() -> None:
    engine = make_engine()
    with pytest.raises(InvalidRequestError):
        engine.search_exact("task", "priority", 1)
    with pytest.raises(InvalidRequestError):
        engine.search_exact("project", "name", "x")


def test_highlights_round_trip_raw_text() -> None:
    engine = make_engine()
    for query in ["project", "projct", "review", "importnt", "milk eggs"]:
        for result in engine.search(query).merged:
            for key, segments in engine.highlights(result).items():
                assert "".join(s.text for s in segments) == result.values[key]
                assert any(s.highlighted for s in segments)


def test_search_with_highlights_renders_markup() -> None:
    engine = make_engine()
    result, markup = engine.search_with_highlights("project", scope="tasks")

    assert result.total == 1
    assert markup[(EntityType.TASK, "t1")] == [
        "Complete <mark>project</mark> proposal",
        "Write the Q1 <mark>project</mark> proposal",
    ]


def test_entry_lookup() -> None:
    engine = make_engine()
    entry = engine.entry(EntityType.LIST, "l1")
    assert entry is not None
    assert entry.raw_values["name"] == "Work Tasks"
    assert engine.entry(EntityType.LIST, "missing") is None
    assert engine.entry("label", "b2") is not None
    with pytest.raises(InvalidRequestError):
        engine.entry("project", "p1")
