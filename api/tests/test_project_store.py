"""Tests for the ProjectStore backends (in-memory and SQL over SQLite)."""

from __future__ import annotations

import math
import threading

import pytest

from app.adapters.postgres_store import PostgresProjectStore
from app.adapters.project_store import InMemoryProjectStore, order_projects, project_matches
from app.models.project import Project, UserProject

from conftest import make_project


def _ids(rows) -> list[int]:
    return [r.project_data["id"] for r in rows]


def _filter(store, **kwargs):
    params = {"group": "", "contributions": "", "query": "", "page": 1, "page_size": 10}
    params.update(kwargs)
    return store.filter_projects(**params)


def test_insert_assigns_id_uuid_and_created_at(store):
    created = store.insert_project(make_project("alpha"))
    assert created.id is not None
    assert created.project_uuid
    assert created.created_at is not None

    got = store.get_project(created.id)
    assert got is not None
    assert got.name == "alpha"
    assert store.get_project_by_uuid(created.project_uuid).id == created.id


def test_get_missing_returns_none(store):
    assert store.get_project(999) is None
    assert store.get_project_by_uuid("nope") is None


def test_ids_are_not_reused_after_delete(store):
    first = store.insert_project(make_project("a"))
    assert store.delete_project(first.id) is True
    second = store.insert_project(make_project("b"))
    assert second.id != first.id


def test_link_ids_are_not_reused_after_delete(store):
    first = store.create_project_with_link(make_project("a"), "u1", 5)
    first_link = store.get_link("u1", first.id)
    assert store.delete_project(first.id) is True

    second = store.create_project_with_link(make_project("b"), "u1", 5)
    assert second.id != first.id
    assert store.get_link("u1", second.id).id != first_link.id


def test_update_changes_fields_but_not_identifiers(store):
    created = store.insert_project(make_project("alpha", stars_count=1))
    updated = store.update_project(
        created.id,
        {"stars_count": 99, "description": "new", "project_uuid": "hijack", "id": 1234},
    )
    assert updated is not None
    assert updated.stars_count == 99
    assert updated.description == "new"
    assert updated.project_uuid == created.project_uuid
    assert updated.id == created.id


def test_update_missing_returns_none(store):
    assert store.update_project(42, {"name": "x"}) is None


def test_delete_removes_links(store):
    created = store.insert_project(make_project("alpha"))
    store.insert_link(UserProject(user_id="u1", project_id=created.id, role_number=5))
    assert store.get_link("u1", created.id) is not None
    assert store.delete_project(created.id) is True
    assert store.get_link("u1", created.id) is None
    assert store.delete_project(created.id) is False


def test_list_projects_newest_first(store):
    a = store.insert_project(make_project("a"))
    b = store.insert_project(make_project("b"))
    c = store.insert_project(make_project("c"))
    assert [p.id for p in store.list_projects()] == [c.id, b.id, a.id]


def test_search_matches_name_or_description(store):
    store.insert_project(make_project("reviewbot", description="bot"))
    store.insert_project(make_project("linter", description="Helps REVIEWBOT users"))
    store.insert_project(make_project("other", description="unrelated"))
    names = {p.name for p in store.search("ReviewBot")}
    assert names == {"reviewbot", "linter"}


def test_list_by_group_and_user(store):
    a = store.insert_project(make_project("a", groups="beginner, docs"))
    b = store.insert_project(make_project("b", groups="advanced"))
    store.insert_link(UserProject(user_id="u1", project_id=b.id, role_number=5))

    assert [p.id for p in store.list_projects_by_group("DOCS")] == [a.id]
    assert [p.id for p in store.list_projects_for_user("u1")] == [b.id]
    assert store.list_projects_for_user("u2") == []


def test_create_project_with_link_writes_both(store):
    created = store.create_project_with_link(make_project("a"), "owner-1", 5)
    link = store.get_link("owner-1", created.id)
    assert link is not None
    assert link.role_number == 5
    assert store.count_projects() == 1


def test_create_project_with_link_rolls_back_on_link_failure_memory(memory_store, monkeypatch):
    def _boom(link):
        raise RuntimeError("link insert failed")

    monkeypatch.setattr(memory_store, "_insert_link_locked", _boom)
    with pytest.raises(RuntimeError):
        memory_store.create_project_with_link(make_project("a"), "owner-1", 5)
    assert memory_store.count_projects() == 0


def test_create_project_with_link_rolls_back_on_link_failure_sql(sql_store):
    # user_id is NOT NULL; the link insert fails inside the same transaction.
    with pytest.raises(Exception):
        sql_store.create_project_with_link(make_project("a"), None, 5)
    assert sql_store.count_projects() == 0


def test_filter_scenario_group_and_star_range(store):
    a = store.insert_project(make_project("A", stars_count=5, groups="beginner"))
    store.insert_project(make_project("B", stars_count=50, groups="beginner"))
    store.insert_project(make_project("C", stars_count=5, groups="advanced"))

    rows = _filter(store, group="beginner", min_stars=1, max_stars=10)
    assert _ids(rows) == [a.id]
    assert rows[0].total_count == 1


def test_filter_query_is_name_or_description_and_anded_with_rest(store):
    by_name = store.insert_project(make_project("review-kit", description="x", languages="go"))
    by_desc = store.insert_project(make_project("kit", description="needs REVIEW help", languages="python"))
    store.insert_project(make_project("plain", description="nothing here", languages="python"))

    assert set(_ids(_filter(store, query="review"))) == {by_name.id, by_desc.id}
    assert _ids(_filter(store, query="review", language="PYTH")) == [by_desc.id]


def test_filter_contributions_substring_case_insensitive(store):
    hit = store.insert_project(make_project("a", contributions="Docs, Reviews"))
    store.insert_project(make_project("b", contributions="docs"))
    assert _ids(_filter(store, contributions="reviews")) == [hit.id]


def test_filter_unbounded_max_includes_huge_star_counts(store):
    huge = store.insert_project(make_project("huge", stars_count=10_000_000))
    rows = _filter(store, min_stars=100, max_stars=None)
    assert _ids(rows) == [huge.id]


def test_filter_missing_star_count_counts_as_zero(store):
    unrated = store.insert_project(make_project("unrated", stars_count=None))
    assert _ids(_filter(store, max_stars=0)) == [unrated.id]
    assert _filter(store, min_stars=1) == []


def test_filter_like_wildcards_are_literal(store):
    store.insert_project(make_project("abc"))
    assert _filter(store, query="%") == []
    assert _filter(store, query="_") == []


def test_filter_matches_non_ascii_case_insensitively(store):
    umlaut = store.insert_project(make_project("Über Linter", groups="ÄRGER"))
    store.insert_project(make_project("plain"))

    assert _ids(_filter(store, query="über", group="ärger")) == [umlaut.id]
    assert [p.id for p in store.search("ÜBER")] == [umlaut.id]


def test_filter_total_count_is_independent_of_page(store):
    for i in range(25):
        store.insert_project(make_project(f"p{i}"))
    page2 = _filter(store, page=2, page_size=10)
    page3 = _filter(store, page=3, page_size=10)
    assert len(page2) == 10
    assert len(page3) == 5
    assert {r.total_count for r in page2 + page3} == {25}


def test_filter_pages_concatenate_to_full_ordered_set(store):
    created = [store.insert_project(make_project(f"p{i}")) for i in range(23)]
    expected = [p.id for p in reversed(created)]

    collected: list[int] = []
    total = _filter(store, page=1, page_size=5)[0].total_count
    for page in range(1, math.ceil(total / 5) + 1):
        collected.extend(_ids(_filter(store, page=page, page_size=5)))
    assert collected == expected


def test_filter_seed_is_reproducible_and_covers_all(store):
    created = [store.insert_project(make_project(f"p{i}")) for i in range(12)]
    first = _ids(_filter(store, seed="abc", page_size=50))
    second = _ids(_filter(store, seed="abc", page_size=50))
    assert first == second
    assert sorted(first) == sorted(p.id for p in created)

    paged = _ids(_filter(store, seed="abc", page=1, page_size=6)) + _ids(
        _filter(store, seed="abc", page=2, page_size=6)
    )
    assert paged == first


def test_backends_agree_on_seeded_and_default_order(memory_store, sql_store):
    for i in range(8):
        fixed = make_project(f"p{i}", project_uuid=f"00000000-0000-0000-0000-00000000000{i}")
        memory_store.insert_project(fixed)
        sql_store.insert_project(fixed)

    for kwargs in ({}, {"seed": "s1"}, {"seed": "s2", "query": "p"}):
        mem = [r.project_data["project_uuid"] for r in _filter(memory_store, page_size=20, **kwargs)]
        sql = [r.project_data["project_uuid"] for r in _filter(sql_store, page_size=20, **kwargs)]
        assert mem == sql


def test_project_matches_blank_criteria_match_everything():
    p = Project(name=None, description=None, stars_count=None)
    assert project_matches(p, "", "", "", None, None, None)
    assert not project_matches(p, group="x")


def test_order_projects_without_seed_is_newest_first():
    older = Project(id=1, name="old")
    newer = Project(id=2, name="new")
    newer.created_at = older.created_at.replace(year=older.created_at.year + 1)
    assert [p.id for p in order_projects([older, newer])] == [2, 1]


def test_in_memory_store_persists_to_json(tmp_path):
    path = str(tmp_path / "projects.json")
    store = InMemoryProjectStore(persist_path=path)
    created = store.create_project_with_link(make_project("kept"), "u1", 5)
    store.save()

    reloaded = InMemoryProjectStore(persist_path=path)
    assert reloaded.get_project(created.id).name == "kept"
    assert reloaded.get_link("u1", created.id) is not None
    assert reloaded.insert_project(make_project("next")).id == created.id + 1


def test_postgres_store_requires_url(monkeypatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    with pytest.raises(ValueError):
        PostgresProjectStore()


def test_in_memory_reads_stay_consistent_during_concurrent_writes(memory_store):
    owned = memory_store.create_project_with_link(make_project("mine"), "owner", 5)
    errors: list[str] = []

    def writer():
        for i in range(2000):
            extra = memory_store.insert_project(make_project(f"extra-{i}"))
            memory_store.insert_link(UserProject(user_id="other", project_id=extra.id, role_number=1))

    thread = threading.Thread(target=writer)
    thread.start()
    try:
        while thread.is_alive():
            try:
                assert memory_store.get_link("owner", owned.id) is not None
                assert memory_store.get_project_by_uuid(owned.project_uuid) is not None
                assert [p.id for p in memory_store.list_projects_for_user("owner")] == [owned.id]
            except RuntimeError as exc:
                errors.append(str(exc))
    finally:
        thread.join()

    assert errors == []
