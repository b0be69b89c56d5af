"""Tests for lineage grouping and head selection."""
from datetime import datetime

from factories import make_file
from fileshare.services.lineage import LineageResolver, lineage_of, resolve_heads


class TestHeads:
    def test_single_record_is_its_own_head(self):
        record = make_file("a")
        assert resolve_heads([record]) == {"a": record}

    def test_newest_child_is_head_for_every_member(self):
        root = make_file("root", 0)
        child = make_file("child", 10, parent_id="root")
        grandchild = make_file("grand", 20, parent_id="child")
        heads = resolve_heads([root, child, grandchild])
        assert {k: v.id for k, v in heads.items()} == {
            "root": "grand", "child": "grand", "grand": "grand",
        }

    def test_head_is_by_created_at_not_depth(self):
        # A child back-dated before its parent does not become head
        root = make_file("root", 30)
        child = make_file("child", 5, parent_id="root")
        assert resolve_heads([root, child])["child"].id == "root"

    def test_siblings_share_a_lineage(self):
        root = make_file("root", 0)
        v2 = make_file("v2", 10, parent_id="root")
        v3 = make_file("v3", 20, parent_id="root")
        resolver = LineageResolver([v3, root, v2])
        assert [h.id for h in resolver.heads()] == ["v3"]

    def test_separate_lineages_stay_separate(self):
        records = [make_file("a", 0), make_file("b", 5), make_file("a2", 10, parent_id="a")]
        resolver = LineageResolver(records)
        assert sorted(h.id for h in resolver.heads()) == ["a2", "b"]

    def test_resolving_twice_gives_same_heads(self):
        records = [
            make_file("r", 0),
            make_file("c1", 1, parent_id="r"),
            make_file("c2", 2, parent_id="c1"),
            make_file("x", 3),
        ]
        first = {k: v.id for k, v in resolve_heads(records).items()}
        second = {k: v.id for k, v in resolve_heads(records).items()}
        assert first == second

    def test_ties_keep_first_seen_record(self):
        a = make_file("a", 10)
        b = make_file("b", 10, parent_id="a")
        assert LineageResolver([a, b]).head_of("b").id == "a"
        assert LineageResolver([b, a]).head_of("a").id == "b"

    def test_naive_and_missing_timestamps_do_not_crash(self):
        old = make_file("old", created_at=None)
        naive = make_file("naive", parent_id="old", created_at=datetime(2025, 1, 1))
        assert LineageResolver([old, naive]).head_of("old").id == "naive"

    def test_unknown_id_has_no_head(self):
        assert LineageResolver([make_file("a")]).head_of("missing") is None


class TestMalformedData:
    def test_two_node_cycle_terminates_as_single_lineage(self):
        a = make_file("A", 0, parent_id="B")
        b = make_file("B", 5, parent_id="A")
        resolver = LineageResolver([a, b])
        assert resolver.root_of("A") == "A"
        assert resolver.root_of("B") == "A"
        assert [h.id for h in resolver.heads()] == ["B"]

    def test_cycle_root_follows_input_order(self):
        a = make_file("A", 0, parent_id="B")
        b = make_file("B", 5, parent_id="A")
        resolver = LineageResolver([b, a])
        assert resolver.root_of("A") == "B"

    def test_cycle_root_does_not_depend_on_query_order(self):
        a = make_file("A", 0, parent_id="B")
        b = make_file("B", 5, parent_id="A")
        resolver = LineageResolver([a, b])
        assert resolver.root_of("B") == "A"
        assert resolver.root_of("A") == "A"

    def test_chain_into_cycle_terminates(self):
        records = [
            make_file("A", 0, parent_id="C"),
            make_file("B", 1, parent_id="A"),
            make_file("C", 2, parent_id="B"),
            make_file("tail", 3, parent_id="A"),
        ]
        heads = resolve_heads(records)
        assert {h.id for h in heads.values()} == {"tail"}

    def test_orphan_parent_is_its_own_root(self):
        orphan = make_file("orphan", 0, parent_id="deleted")
        sibling = make_file("sibling", 5, parent_id="deleted")
        resolver = LineageResolver([orphan, sibling])
        assert resolver.root_of("orphan") == "orphan"
        assert sorted(h.id for h in resolver.heads()) == ["orphan", "sibling"]

    def test_self_reference_is_root(self):
        record = make_file("self", 0, parent_id="self")
        resolver = LineageResolver([record])
        assert resolver.root_of("self") == "self"
        assert resolver.head_of("self") is record


class TestPathCompression:
    def test_every_node_on_walk_is_cached(self):
        records = [make_file("n0", 0)] + [
            make_file(f"n{i}", i, parent_id=f"n{i - 1}") for i in range(1, 50)
        ]
        resolver = LineageResolver(records)
        assert resolver.root_of("n49") == "n0"
        assert all(resolver._root_cache[f"n{i}"] == "n0" for i in range(50))

    def test_deep_chain_resolves(self):
        records = [make_file("n0", 0)] + [
            make_file(f"n{i}", i, parent_id=f"n{i - 1}") for i in range(1, 2000)
        ]
        assert resolve_heads(records)["n0"].id == "n1999"


class TestLineageOf:
    def test_returns_members_newest_first(self):
        records = [
            make_file("root", 0),
            make_file("v2", 10, parent_id="root"),
            make_file("v3", 20, parent_id="v2"),
            make_file("other", 30),
        ]
        assert [r.id for r in lineage_of(records, "root")] == ["v3", "v2", "root"]
        assert [r.id for r in lineage_of(records, "v3")] == ["v3", "v2", "root"]

    def test_unknown_target_is_empty(self):
        assert lineage_of([make_file("a")], "nope") == []

    def test_resolver_is_fresh_per_call(self):
        records = [make_file("root", 0)]
        assert lineage_of(records, "root")[0].id == "root"
        records.append(make_file("v2", 5, parent_id="root"))
        assert lineage_of(records, "root")[0].id == "v2"
