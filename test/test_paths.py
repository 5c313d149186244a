from pytest import mark, raises

from zoosync import *


@mark.parametrize(
    "path",
    ["/", "/a", "/a/b", "/zookeeper/quota", "/node-0000000001", "/a b/c"],
)
def test_valid(path: str):
    assert is_valid_path(path)
    assert is_valid_sub_path(path)
    assert validate_path(path) == path


@mark.parametrize(
    "path",
    ["", "a", "a/b", "/a/", "//", "/a//b", "//a"],
)
def test_invalid(path: str):
    assert not is_valid_path(path)

    with raises(InvalidPathError) as e:
        validate_path(path)

    assert e.value.path == path


def test_sub_path():
    assert is_valid_sub_path("a")
    assert is_valid_sub_path("a/b")
    assert not is_valid_sub_path("a/")
    assert not is_valid_sub_path("a//b")
    assert not is_valid_sub_path("")


def test_parent():
    assert get_parent("/") is None
    assert get_parent("/a") == "/"
    assert get_parent("/a/b") == "/a"
    assert get_parent("/a/b/c") == "/a/b"


@mark.parametrize(
    "path",
    ["/a", "/a/b", "/a/b/c", "/zookeeper/quota", "/node-0000000001"],
)
@mark.parametrize("name", ["x", "quota", "item-0000000000"])
def test_parent_of_sibling(path: str, name: str):
    parent = get_parent(path)
    assert parent is not None

    assert get_parent(join_path(parent, name)) == parent

    if parent != ROOT:
        assert get_parent(parent + "/" + name) == parent


def test_name():
    assert get_name("/") == ""
    assert get_name("/a") == "a"
    assert get_name("/a/b/c") == "c"


def test_join():
    assert join_path("/", "a") == "/a"
    assert join_path("/a", "b") == "/a/b"
    assert join_path("/a", "b/c") == "/a/b/c"
    assert join_path("/a", "/b") == "/a/b"

    with raises(InvalidPathError):
        join_path("/a", "b/")

    with raises(InvalidPathError):
        join_path("/a", "")


def test_ancestors():
    assert list(iter_ancestors("/")) == []
    assert list(iter_ancestors("/a")) == []
    assert list(iter_ancestors("/a/b/c")) == ["/a", "/a/b"]


def test_invalid_error_is_value_error():
    # usable wherever a ValueError is expected
    with raises(ValueError):
        validate_path("relative")
