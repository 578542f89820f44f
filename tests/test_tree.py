import pytest

from smtpdextras.tree import Tree, TreeError


@pytest.fixture
def tree():
    t = Tree()
    for key in (30, 10, 20):
        t.xset(key, f"v{key}")
    return t


def test_set_returns_old_value():
    t = Tree()
    assert t.set(5, "a") is None
    assert t.set(5, "b") == "a"
    assert t.get(5) == "b"
    assert len(t) == 1


def test_xset_duplicate_raises(tree):
    with pytest.raises(TreeError):
        tree.xset(10, "again")
    assert tree.get(10) == "v10"


def test_check_and_contains(tree):
    assert tree.check(20)
    assert 30 in tree
    assert not tree.check(99)


def test_get_missing_returns_none(tree):
    assert tree.get(99) is None


def test_xget(tree):
    assert tree.xget(20) == "v20"
    with pytest.raises(TreeError):
        tree.xget(99)


def test_pop_and_xpop(tree):
    assert tree.pop(10) == "v10"
    assert tree.pop(10) is None
    assert len(tree) == 2
    assert tree.xpop(20) == "v20"
    with pytest.raises(TreeError):
        tree.xpop(20)
    assert len(tree) == 1


def test_poproot_drains(tree):
    seen = []
    while (entry := tree.poproot()) is not None:
        seen.append(entry)
    assert sorted(seen) == [(10, "v10"), (20, "v20"), (30, "v30")]
    assert len(tree) == 0
    assert tree.poproot() is None


def test_root_does_not_remove(tree):
    entry = tree.root()
    assert entry in [(10, "v10"), (20, "v20"), (30, "v30")]
    assert len(tree) == 3
    assert Tree().root() is None


def test_items_in_order(tree):
    assert [k for k, _ in tree.items()] == [10, 20, 30]


def test_items_from_existing_and_missing_key(tree):
    assert [k for k, _ in tree.items_from(20)] == [20, 30]
    assert [k for k, _ in tree.items_from(15)] == [20, 30]
    assert [k for k, _ in tree.items_from(0)] == [10, 20, 30]
    assert list(tree.items_from(31)) == []


def test_items_tolerates_removal_during_iteration(tree):
    for key, _ in tree.items():
        tree.pop(key)
    assert len(tree) == 0


def test_merge_moves_everything(tree):
    other = Tree()
    other.xset(40, "v40")
    other.xset(5, "v5")
    tree.merge(other)
    assert len(other) == 0
    assert len(tree) == 5
    assert [k for k, _ in tree.items()] == [5, 10, 20, 30, 40]


def test_merge_duplicate_raises(tree):
    other = Tree()
    other.xset(10, "dup")
    with pytest.raises(TreeError):
        tree.merge(other)
    assert tree.get(10) == "v10"
    assert len(other) == 1


def test_large_ids():
    t = Tree()
    big = (1 << 64) - 1
    t.xset(big, "max")
    t.xset(0, "zero")
    assert [k for k, _ in t.items()] == [0, big]
    assert t.xget(big) == "max"