"""Tests for lineage resolution."""

import asyncio

import pytest

from lineage_bench.lineage import (
    InvalidInput,
    LineageEdge,
    LineageResolver,
    LookupFailure,
    ResolutionTimeout,
    resolve_lineage,
)


def _identities(edges):
    return {e.identity for e in edges}


class TestResolve:
    @pytest.mark.asyncio
    async def test_commit_count_lineage_example(self, edge, edge_graph):
        root = edge("dwd_git_commits", ["id1"], "dws_projects", "p1", ["commit_count_in_1m"])
        cleaned = edge("ods_git_commits", ["r1"], "dwd_git_commits", "id1", ["code_lines_added"])
        graph = edge_graph([cleaned])

        edges = await LineageResolver(graph.fetch_children).resolve(root)

        assert len(edges) == 2
        assert edges[0] == root
        assert edges[1] == cleaned
        assert graph.calls == [
            ("dwd_git_commits", frozenset({"id1"})),
            ("ods_git_commits", frozenset({"r1"})),
        ]

    @pytest.mark.asyncio
    async def test_terminal_root_issues_no_lookup(self, edge, edge_graph):
        root = edge("dwd_git_commits", [], "dws_projects", "p1")
        graph = edge_graph()

        edges = await LineageResolver(graph.fetch_children).resolve(root)

        assert edges == [root]
        assert graph.calls == []

    @pytest.mark.asyncio
    async def test_empty_to_id_is_invalid(self, edge, edge_graph):
        root = edge("dwd_git_commits", ["id1"], "dws_projects", "")
        graph = edge_graph()

        with pytest.raises(InvalidInput):
            await LineageResolver(graph.fetch_children).resolve(root)
        assert graph.calls == []

    @pytest.mark.asyncio
    async def test_malformed_root_dict_is_invalid(self, edge_graph):
        graph = edge_graph()
        with pytest.raises(InvalidInput):
            await LineageResolver(graph.fetch_children).resolve({"from_table": "t", "to_id": "x"})
        assert graph.calls == []

    @pytest.mark.asyncio
    async def test_root_given_as_row(self, edge, edge_graph):
        cleaned = edge("ods_git_commits", ["r1"], "dwd_git_commits", "id1")
        graph = edge_graph([cleaned])
        root = {
            "from_table": "dwd_git_commits",
            "from_ids": ["id1"],
            "to_table": "dws_projects",
            "to_id": "p1",
            "to_facets": ["commit_count_in_1m"],
            "created_at": "2024-01-01 00:00:00",
        }

        edges = await resolve_lineage(root, graph.fetch_children)

        assert [e.to_table for e in edges] == ["dws_projects", "dwd_git_commits"]

    @pytest.mark.asyncio
    async def test_acyclic_graph_returns_exactly_reachable_edges(self, edge, edge_graph):
        """dws ← dwm ← dwd ← ods, plus dws ← dwd_git ← ods_git; one unrelated edge."""
        root = edge("dwm_bugs", ["b1", "b2"], "dws_projects", "p1")
        reachable = [
            edge("dwd_jira_issues", ["d1"], "dwm_bugs", "b1"),
            edge("dwd_jira_issues", ["d2"], "dwm_bugs", "b2"),
            edge("ods_jira_issues", ["d1"], "dwd_jira_issues", "d1"),
            edge("ods_jira_issues", ["d2"], "dwd_jira_issues", "d2"),
        ]
        unrelated = edge("ods_jira_issues", ["d9"], "dwd_jira_issues", "d9")
        graph = edge_graph(reachable + [unrelated])

        edges = await LineageResolver(graph.fetch_children).resolve(root)

        assert len(edges) == len(reachable) + 1
        assert _identities(edges) == _identities([root] + reachable)

    @pytest.mark.asyncio
    async def test_parents_precede_their_ancestors(self, edge, edge_graph):
        root = edge("b", ["b1"], "a", "a1")
        mid = edge("c", ["c1"], "b", "b1")
        leaf = edge("d", ["d1"], "c", "c1")
        graph = edge_graph([leaf, mid])

        edges = await LineageResolver(graph.fetch_children).resolve(root)

        assert edges == [root, mid, leaf]

    @pytest.mark.asyncio
    async def test_cycle_terminates(self, edge, edge_graph):
        root = edge("x", ["x1"], "z", "z1")
        a = edge("y", ["y1"], "x", "x1")
        b = edge("x", ["x1"], "y", "y1")  # points back at the root's ancestor set
        graph = edge_graph([a, b])

        edges = await LineageResolver(graph.fetch_children).resolve(root)

        assert _identities(edges) == _identities([root, a, b])
        assert len(graph.calls) == 2
        assert len(set(graph.calls)) == len(graph.calls)

    @pytest.mark.asyncio
    async def test_self_referencing_edge_terminates(self, edge, edge_graph):
        root = edge("t", ["1"], "t", "1")
        graph = edge_graph([root])

        edges = await LineageResolver(graph.fetch_children).resolve(root)

        assert edges == [root]
        assert len(graph.calls) == 1

    @pytest.mark.asyncio
    async def test_diamond_expands_shared_ancestor_once(self, edge, edge_graph):
        """root → {B, C}; B and C both come from key K."""
        root = edge("m", ["b", "c"], "r", "r1")
        b = edge("k", ["k1"], "m", "b")
        c = edge("k", ["k1"], "m", "c")
        k = edge("s", ["s1"], "k", "k1")
        graph = edge_graph([b, c, k])

        edges = await LineageResolver(graph.fetch_children).resolve(root)

        assert len(edges) == 4
        assert _identities(edges) == _identities([root, b, c, k])
        assert graph.calls_for("k") == [frozenset({"k1"})]

    @pytest.mark.asyncio
    async def test_duplicate_rows_are_emitted_once(self, edge, edge_graph):
        root = edge("b", ["b1"], "a", "a1")
        parent = edge("c", ["c1"], "b", "b1")
        graph = edge_graph([parent, parent])

        edges = await LineageResolver(graph.fetch_children).resolve(root)

        assert edges == [root, parent]

    @pytest.mark.asyncio
    async def test_idempotent(self, edge, edge_graph):
        root = edge("m", ["b", "c"], "r", "r1")
        stored = [
            edge("k", ["k1"], "m", "b"),
            edge("k", ["k2"], "m", "c"),
            edge("s", ["s1"], "k", "k1"),
            edge("s", ["s2"], "k", "k2"),
        ]
        resolver = LineageResolver(edge_graph(stored).fetch_children)

        first = await resolver.resolve(root)
        second = await resolver.resolve(root)

        assert _identities(first) == _identities(second)

    @pytest.mark.asyncio
    async def test_concurrent_calls_do_not_share_visited_state(self, edge, edge_graph):
        root = edge("b", ["b1"], "a", "a1")
        stored = [edge("c", ["c1"], "b", "b1"), edge("d", ["d1"], "c", "c1")]
        resolver = LineageResolver(edge_graph(stored, delay=0.01).fetch_children)

        first, second = await asyncio.gather(resolver.resolve(root), resolver.resolve(root))

        assert len(first) == len(second) == 3

    @pytest.mark.asyncio
    async def test_legacy_facet_field(self, edge):
        root = edge("ods_jira_issues", ["i1"], "dwd_jira_issues", "i1")

        async def fetch(table, ids):
            return []

        trace = await LineageResolver(fetch).trace(root)
        assert trace.complete
        row = {
            "from_table": "ods_jira_issues", "from_ids": ["i1"], "to_table": "dwd_jira_issues",
            "to_id": "i1", "to_to_facets": ["total_days"], "created_at": 1704067200,
        }
        assert LineageEdge.model_validate(row).to_facets == ("total_days",)


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_level_lookups_run_concurrently_within_limit(self, edge, edge_graph):
        ids = [f"m{i}" for i in range(10)]
        root = edge("m", ids, "r", "r1")
        stored = [edge("k", [f"k{i}"], "m", f"m{i}") for i in range(10)]
        graph = edge_graph(stored, delay=0.01)

        edges = await LineageResolver(graph.fetch_children, max_concurrency=3).resolve(root)

        assert len(edges) == 11
        assert len(graph.calls_for("k")) == 10
        assert 1 < graph.max_in_flight <= 3

    @pytest.mark.asyncio
    async def test_timeout(self, edge, edge_graph):
        root = edge("b", ["b1"], "a", "a1")
        graph = edge_graph(delay=0.5)

        with pytest.raises(ResolutionTimeout) as exc_info:
            await LineageResolver(graph.fetch_children, timeout=0.05).resolve(root)
        assert exc_info.value.timeout == 0.05

    @pytest.mark.asyncio
    async def test_trace_counts_lookups(self, edge, edge_graph):
        root = edge("b", ["b1"], "a", "a1")
        graph = edge_graph([edge("c", ["c1"], "b", "b1")])

        trace = await LineageResolver(graph.fetch_children).trace(root)

        assert trace.lookups == 2
        assert trace.duration_ms is not None
        assert ("b", "b1") in trace.visited
        assert trace.to_dict()["lookups"] == 2


class TestFailures:
    @pytest.mark.asyncio
    async def test_lookup_error_aborts_by_default(self, edge, edge_graph):
        root = edge("dwd", ["d1"], "dws", "p1")
        graph = edge_graph([edge("ods", ["o1"], "dwd", "d1")], fail_on={"ods"})

        with pytest.raises(LookupFailure) as exc_info:
            await LineageResolver(graph.fetch_children).resolve(root)

        assert exc_info.value.table == "ods"
        assert exc_info.value.ids == ("o1",)
        assert isinstance(exc_info.value.cause, ConnectionError)

    @pytest.mark.asyncio
    async def test_abort_cancels_sibling_lookups(self, edge):
        root = edge("m", ["a", "b"], "r", "r1")
        stored = [edge("bad", ["x"], "m", "a"), edge("slow", ["y"], "m", "b")]
        finished = []

        async def fetch(table, ids):
            if table == "bad":
                raise RuntimeError("boom")
            if table == "slow":
                await asyncio.sleep(1)
                finished.append(table)
                return []
            return [e for e in stored if e.to_table == table and e.to_id in ids]

        with pytest.raises(LookupFailure):
            await LineageResolver(fetch).resolve(root)
        assert finished == []

    @pytest.mark.asyncio
    async def test_skip_mode_keeps_other_branches(self, edge, edge_graph):
        root = edge("m", ["a", "b"], "r", "r1")
        good = edge("ok", ["o1"], "m", "a")
        bad = edge("down", ["x1"], "m", "b")
        graph = edge_graph([good, bad], fail_on={"down"})

        trace = await LineageResolver(graph.fetch_children, on_error="skip").trace(root)

        assert _identities(trace.edges) == _identities([root, good, bad])
        assert not trace.complete
        assert [f.table for f in trace.skipped] == ["down"]

    @pytest.mark.asyncio
    async def test_malformed_row_is_lookup_failure(self, edge):
        root = edge("b", ["b1"], "a", "a1")

        async def fetch(table, ids):
            return [{"bogus": 1}]

        with pytest.raises(LookupFailure) as exc_info:
            await LineageResolver(fetch).resolve(root)
        assert exc_info.value.table == "b"

    @pytest.mark.asyncio
    async def test_edge_outside_request_is_lookup_failure(self, edge):
        root = edge("b", ["b1"], "a", "a1")

        async def fetch(table, ids):
            return [edge("c", ["c1"], "b", "b2")]

        with pytest.raises(LookupFailure):
            await LineageResolver(fetch).resolve(root)

    @pytest.mark.asyncio
    async def test_none_result_is_lookup_failure(self, edge):
        root = edge("b", ["b1"], "a", "a1")

        async def fetch(table, ids):
            return None

        with pytest.raises(LookupFailure):
            await LineageResolver(fetch).resolve(root)

    def test_rejects_unknown_modes(self, edge_graph):
        graph = edge_graph()
        with pytest.raises(ValueError):
            LineageResolver(graph.fetch_children, on_error="retry")
        with pytest.raises(ValueError):
            LineageResolver(graph.fetch_children, key_mode="row")
        with pytest.raises(ValueError):
            LineageResolver(graph.fetch_children, max_concurrency=0)


class TestKeyModes:
    def _overlapping(self, edge):
        root = edge("m", ["a", "b"], "r", "r1")
        stored = [
            edge("k", ["k1", "k2"], "m", "a"),
            edge("k", ["k2", "k3"], "m", "b"),
        ]
        return root, stored

    @pytest.mark.asyncio
    async def test_id_set_mode_looks_up_each_set(self, edge, edge_graph):
        root, stored = self._overlapping(edge)
        graph = edge_graph(stored)

        await LineageResolver(graph.fetch_children).resolve(root)

        assert sorted(graph.calls_for("k"), key=sorted) == [
            frozenset({"k1", "k2"}),
            frozenset({"k2", "k3"}),
        ]

    @pytest.mark.asyncio
    async def test_id_mode_never_requests_an_id_twice(self, edge, edge_graph):
        root, stored = self._overlapping(edge)
        graph = edge_graph(stored)

        edges = await LineageResolver(graph.fetch_children, key_mode="id").resolve(root)

        requested = [i for ids in graph.calls_for("k") for i in ids]
        assert sorted(requested) == ["k1", "k2", "k3"]
        assert _identities(edges) == _identities([root] + stored)
