from datetime import datetime, timedelta, timezone

from taskspace.filters import TaskQuery
from taskspace.models import Task
from taskspace.tree import build_task_tree, completion_percentage, descendant_ids, flatten_task_tree

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _task(id, title=None, parent=None, ws="w1", position=None, minutes=0, **kw):
    return Task(
        id=id,
        user_id="u1",
        workspace_id=ws,
        parent_task_id=parent,
        title=title or id,
        position=position,
        created_at=T0 + timedelta(minutes=minutes),
        **kw,
    )


def test_tree_nests_by_parent_and_sorts_siblings_by_position():
    tasks = [
        _task("a", position=1),
        _task("b", position=0),
        _task("a2", parent="a", position=2),
        _task("a1", parent="a", position=1),
    ]
    roots = build_task_tree(tasks)
    assert [n.id for n in roots] == ["b", "a"]
    assert [n.id for n in roots[1].subtasks] == ["a1", "a2"]


def test_tree_drops_subtasks_whose_parent_is_missing():
    roots = build_task_tree([_task("orphan", parent="gone"), _task("root")])
    assert [n.id for n in roots] == ["root"]


def test_flatten_walks_parents_before_children():
    tasks = [_task("a"), _task("a1", parent="a"), _task("a1x", parent="a1"), _task("b")]
    ids = [n.id for n in flatten_task_tree(build_task_tree(tasks, sort_roots=False))]
    assert ids == ["a", "a1", "a1x", "b"]


def test_completion_percentage_averages_children():
    tasks = [
        _task("p"),
        _task("c1", parent="p", completed=True),
        _task("c2", parent="p"),
    ]
    root = build_task_tree(tasks)[0]
    assert completion_percentage(root) == 50


def test_descendant_ids_tolerates_cycles():
    tasks = [_task("a", parent="c"), _task("b", parent="a"), _task("c", parent="b")]
    assert descendant_ids(tasks, "a") == ["b", "c"]


def test_query_filters_other_workspaces_and_returns_nothing_without_workspace():
    tasks = [_task("a"), _task("x", ws="w2")]
    assert [n.id for n in TaskQuery().apply(tasks, "w1")] == ["a"]
    assert TaskQuery().apply(tasks, None) == []


def test_query_search_matches_title_or_description_case_insensitively():
    tasks = [_task("a", title="Buy MILK"), _task("b", description="milk run"), _task("c", title="Other")]
    ids = {n.id for n in TaskQuery(search="milk").apply(tasks, "w1")}
    assert ids == {"a", "b"}


def test_query_status_filters():
    tasks = [_task("a", completed=True), _task("b")]
    assert [n.id for n in TaskQuery(status="active").apply(tasks, "w1")] == ["b"]
    assert [n.id for n in TaskQuery(status="completed").apply(tasks, "w1")] == ["a"]


def test_query_tag_filter_uses_task_tag_map():
    tasks = [_task("a"), _task("b")]
    out = TaskQuery(tag_ids=["t1"]).apply(tasks, "w1", {"b": ["t1"]})
    assert [n.id for n in out] == ["b"]


def test_query_date_range_keeps_only_tasks_with_deadline_inside():
    tasks = [
        _task("early", deadline=T0),
        _task("inside", deadline=T0 + timedelta(days=2)),
        _task("none"),
    ]
    q = TaskQuery(date_from=T0 + timedelta(days=1), date_to=T0 + timedelta(days=3))
    assert [n.id for n in q.apply(tasks, "w1")] == ["inside"]


def test_query_sorts():
    tasks = [
        _task("old", title="b", minutes=0, priority="low", deadline=T0 + timedelta(days=1)),
        _task("new", title="A", minutes=5, priority="high"),
        _task("mid", title="c", minutes=2, priority="medium", deadline=T0),
    ]
    assert [n.id for n in TaskQuery().apply(tasks, "w1")] == ["new", "mid", "old"]
    assert [n.id for n in TaskQuery(sort="deadline").apply(tasks, "w1")] == ["mid", "old", "new"]
    assert [n.id for n in TaskQuery(sort="priority").apply(tasks, "w1")] == ["new", "mid", "old"]
    assert [n.id for n in TaskQuery(sort="title").apply(tasks, "w1")] == ["new", "old", "mid"]
