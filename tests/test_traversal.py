from __future__ import annotations

import itertools

import pytest

from lineage_store.errors import TraversalBudgetExceeded, VertexNotFoundError
from lineage_store.graph import CyclePolicy, GraphName, Scope, TraversalEngine, View
from lineage_store.graph import traversal as traversal_module

LM = "LineageMapping"


def _columns(load_graph, graph, guids: str, edges: list[tuple[str, str]]) -> None:
    load_graph(graph, [(g, "TabularColumnType") for g in guids], [(a, b, LM) for a, b in edges])


def test_ultimate_source_column_view(engine, table_graph) -> None:
    result = engine.lineage(GraphName.MAIN, Scope.ULTIMATE_SOURCE, View.COLUMN_VIEW, "C2")

    assert sorted(result.guids()) == ["C1", "C2"]
    assert result.edge_keys() == [("C1", "C2", LM)]
    assert result.terminals == ["C1"]


def test_ultimate_source_table_view_collapses_without_self_edge(engine, table_graph) -> None:
    result = engine.lineage("MAIN", "ULTIMATE_SOURCE", "TABLE_VIEW", "C2")

    assert result.guids() == ["T1"]
    assert result.edges == []


def test_source_and_destination_is_one_hop_neighbourhood(engine, table_graph) -> None:
    result = engine.lineage(GraphName.MAIN, Scope.SOURCE_AND_DESTINATION, View.COLUMN_VIEW, "C1")

    assert set(result.guids()) == {"C1", "T1", "C2"}
    assert set(result.edge_keys()) == {("T1", "C1", "AttributeForSchema"), ("C1", "C2", LM)}


def test_source_and_destination_does_not_recurse(registry, engine, load_graph) -> None:
    _columns(load_graph, registry.graph("MAIN"), "abcde", [("a", "b"), ("b", "c"), ("c", "d"), ("d", "e")])

    result = engine.lineage("MAIN", Scope.SOURCE_AND_DESTINATION, View.COLUMN_VIEW, "c")

    assert result.guids() == ["c", "b", "d"]
    assert len(result.edges) == 2


def test_acyclic_ultimate_source_reaches_terminal_ancestors(registry, engine, load_graph) -> None:
    main = registry.graph("MAIN")
    _columns(load_graph, main, "abcd", [("a", "b"), ("b", "c"), ("d", "b")])

    result = engine.lineage("MAIN", Scope.ULTIMATE_SOURCE, View.COLUMN_VIEW, "c")

    assert result.guids() == ["c", "b", "a", "d"]
    assert result.terminals == ["a", "d"]
    snap = main.view()
    for guid in result.terminals:
        assert not [e for e in snap.in_edges(guid) if e.label == LM]


def test_ultimate_destination_is_symmetric(registry, engine, load_graph) -> None:
    _columns(load_graph, registry.graph("MAIN"), "abcd", [("a", "b"), ("b", "c"), ("b", "d")])

    result = engine.lineage("MAIN", Scope.ULTIMATE_DESTINATION, View.COLUMN_VIEW, "a")

    assert result.guids() == ["a", "b", "c", "d"]
    assert result.terminals == ["c", "d"]


def test_no_qualifying_edges_gives_empty_subgraph(engine, table_graph) -> None:
    result = engine.lineage("MAIN", Scope.ULTIMATE_SOURCE, View.COLUMN_VIEW, "C1")

    assert result.is_empty


def test_unknown_guid_is_not_found(engine, table_graph) -> None:
    with pytest.raises(VertexNotFoundError) as exc:
        engine.lineage("MAIN", Scope.ULTIMATE_SOURCE, View.COLUMN_VIEW, "nope")
    assert exc.value.http_code == 404


def test_cycle_terminates_and_includes_closing_edge(registry, engine, load_graph) -> None:
    _columns(load_graph, registry.graph("MAIN"), "AB", [("A", "B"), ("B", "A")])

    result = engine.lineage("MAIN", Scope.ULTIMATE_SOURCE, View.COLUMN_VIEW, "A")

    assert result.guids() == ["A", "B"]
    assert set(result.edge_keys()) == {("B", "A", LM), ("A", "B", LM)}
    assert result.terminals == []


def test_cycle_prune_policy_drops_closing_edge(registry, load_graph) -> None:
    _columns(load_graph, registry.graph("MAIN"), "AB", [("A", "B"), ("B", "A")])
    engine = TraversalEngine(registry, cycle_policy=CyclePolicy.PRUNE)

    result = engine.lineage("MAIN", Scope.ULTIMATE_SOURCE, View.COLUMN_VIEW, "A")

    assert result.guids() == ["A", "B"]
    assert result.edge_keys() == [("B", "A", LM)]


def test_cycle_policy_comes_from_settings(registry, settings) -> None:
    settings.cycle_policy = "prune"

    assert TraversalEngine(registry, settings=settings).cycle_policy is CyclePolicy.PRUNE


def test_end_to_end_keeps_paths_between_discovered_terminals(registry, engine, load_graph) -> None:
    _columns(
        load_graph,
        registry.graph("MAIN"),
        ["s1", "s2", "x", "d1", "d2", "m", "y"],
        [("s1", "x"), ("s2", "x"), ("x", "d1"), ("x", "d2"), ("s1", "m"), ("m", "d1"), ("s1", "y")],
    )

    result = engine.lineage("MAIN", Scope.END_TO_END, View.COLUMN_VIEW, "x")

    assert set(result.guids()) == {"s1", "s2", "x", "d1", "d2", "m"}
    assert ("s1", "m", LM) in result.edge_keys()
    assert ("m", "d1", LM) in result.edge_keys()
    assert ("s1", "y", LM) not in result.edge_keys()
    assert set(result.terminals) == {"s1", "s2", "d1", "d2"}


def test_end_to_end_on_cycle_terminates(registry, engine, load_graph) -> None:
    _columns(load_graph, registry.graph("MAIN"), "ABC", [("A", "B"), ("B", "C"), ("C", "A")])

    result = engine.lineage("MAIN", Scope.END_TO_END, View.COLUMN_VIEW, "B")

    assert set(result.guids()) == {"A", "B", "C"}
    assert len(result.edges) == 3


def test_glossary_follows_only_glossary_edges(registry, engine, table_graph, load_graph) -> None:
    load_graph(
        table_graph,
        [("term", "GlossaryTerm"), ("cat", "GlossaryCategory")],
        [("C1", "term", "SemanticAssignment"), ("cat", "term", "TermCategorization")],
    )

    result = engine.lineage("MAIN", Scope.GLOSSARY, View.COLUMN_VIEW, "C1")

    assert result.guids() == ["C1", "term", "cat"]
    assert all(e.label in {"SemanticAssignment", "TermCategorization"} for e in result.edges)


def test_glossary_without_assignment_is_empty(engine, table_graph) -> None:
    result = engine.lineage("MAIN", Scope.GLOSSARY, View.TABLE_VIEW, "C2")

    assert result.is_empty


def test_hop_budget_raises_with_partial_result(registry, load_graph) -> None:
    chain = [f"n{i}" for i in range(10)]
    _columns(load_graph, registry.graph("MAIN"), chain, list(zip(chain, chain[1:])))
    engine = TraversalEngine(registry, max_hops=3)

    with pytest.raises(TraversalBudgetExceeded) as exc:
        engine.lineage("MAIN", Scope.ULTIMATE_DESTINATION, View.COLUMN_VIEW, "n0")

    assert exc.value.partial.guids() == ["n0", "n1", "n2", "n3"]
    assert exc.value.http_code == 422


def test_hop_budget_allows_exact_depth(registry, load_graph) -> None:
    chain = ["n0", "n1", "n2", "n3"]
    _columns(load_graph, registry.graph("MAIN"), chain, list(zip(chain, chain[1:])))

    result = TraversalEngine(registry, max_hops=3).lineage("MAIN", "ULTIMATE_DESTINATION", "COLUMN_VIEW", "n0")

    assert result.guids() == chain


def test_time_budget_raises(registry, load_graph, monkeypatch) -> None:
    chain = [f"n{i}" for i in range(20)]
    _columns(load_graph, registry.graph("MAIN"), chain, list(zip(chain, chain[1:])))
    clock = itertools.count()
    monkeypatch.setattr(traversal_module.time, "monotonic", lambda: float(next(clock)))
    engine = TraversalEngine(registry, time_budget_s=3.0)

    with pytest.raises(TraversalBudgetExceeded) as exc:
        engine.lineage("MAIN", Scope.ULTIMATE_DESTINATION, View.COLUMN_VIEW, "n0")

    assert 0 < len(exc.value.partial.vertices) < len(chain)


def test_traversal_is_deterministic(registry, engine, load_graph) -> None:
    _columns(
        load_graph,
        registry.graph("MAIN"),
        "zyxwv",
        [("z", "v"), ("y", "v"), ("x", "v"), ("w", "x"), ("w", "z")],
    )

    first = engine.lineage("MAIN", Scope.END_TO_END, View.COLUMN_VIEW, "v")
    second = engine.lineage("MAIN", Scope.END_TO_END, View.COLUMN_VIEW, "v")

    assert first.guids() == second.guids()
    assert first.edge_keys() == second.edge_keys()
    assert first.guids()[:4] == ["v", "z", "y", "x"]


def test_history_version_can_be_queried(registry, engine, table_graph) -> None:
    registry.snapshot()
    table_graph.remove_vertex("C1")

    result = engine.lineage(GraphName.HISTORY, Scope.ULTIMATE_SOURCE, View.COLUMN_VIEW, "C2", version=1)

    assert sorted(result.guids()) == ["C1", "C2"]
    assert engine.lineage("MAIN", Scope.ULTIMATE_SOURCE, View.COLUMN_VIEW, "C2").is_empty


def test_prune_policy_keeps_diamond_cross_edge(registry, load_graph) -> None:
    _columns(load_graph, registry.graph("MAIN"), "sabd", [("s", "a"), ("s", "b"), ("a", "d"), ("b", "d")])
    engine = TraversalEngine(registry, cycle_policy=CyclePolicy.PRUNE)

    result = engine.lineage("MAIN", Scope.ULTIMATE_DESTINATION, View.COLUMN_VIEW, "s")

    assert result.edge_keys() == [("s", "a", LM), ("s", "b", LM), ("a", "d", LM), ("b", "d", LM)]
    assert result.terminals == ["d"]


def test_prune_policy_drops_back_edge_of_longer_cycle(registry, load_graph) -> None:
    _columns(load_graph, registry.graph("MAIN"), "ABC", [("A", "B"), ("B", "C"), ("C", "A")])
    engine = TraversalEngine(registry, cycle_policy=CyclePolicy.PRUNE)

    result = engine.lineage("MAIN", Scope.ULTIMATE_DESTINATION, View.COLUMN_VIEW, "A")

    assert result.edge_keys() == [("A", "B", LM), ("B", "C", LM)]


def test_table_view_keeps_column_without_containment_edge(registry, engine, load_graph) -> None:
    load_graph(
        registry.graph("MAIN"),
        [("T1", "RelationalTable"), ("C1", "RelationalColumn"), ("C2", "RelationalColumn")],
        [("T1", "C1", "AttributeForSchema"), ("C1", "C2", LM)],
    )

    result = engine.lineage("MAIN", Scope.ULTIMATE_SOURCE, View.TABLE_VIEW, "C2")

    assert result.guids() == ["C2", "T1"]
    assert result.edge_keys() == [("T1", "C2", LM)]
    assert result.terminals == ["T1"]
