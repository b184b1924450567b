import pytest

from animation_capture.errors import ResolutionError, UsageError
from animation_capture.resolve import (
    collect_animation_files,
    contains_wildcards,
    prepare_output_directory,
    resolve_animation_files,
    resolve_animation_pattern,
    wildcard_to_regex,
)


def test_resolve_pattern_accepts_single_html_name():
    assert resolve_animation_pattern(["example.htm"]) == "example.htm"
    assert resolve_animation_pattern(["example.html"]) == "example.html"
    assert resolve_animation_pattern(["demo-*"]) == "demo-*"


@pytest.mark.parametrize("args", [[], ["a.html", "b.html"]])
def test_resolve_pattern_rejects_wrong_argument_count(args):
    with pytest.raises(UsageError, match="Expected the HTML file name"):
        resolve_animation_pattern(args)


@pytest.mark.parametrize("name", ["sub/demo.html", "..\\demo.html", "dir/*.html"])
def test_resolve_pattern_rejects_path_separators(name):
    with pytest.raises(UsageError, match="path separators"):
        resolve_animation_pattern([name])


def test_resolve_pattern_rejects_non_html_name():
    with pytest.raises(UsageError):
        resolve_animation_pattern(["notes.txt"])


def test_contains_wildcards():
    assert contains_wildcards("demo.html") is False
    assert contains_wildcards("demo-*.html") is True
    assert contains_wildcards("demo-?.html") is True


def test_wildcard_matching_is_case_insensitive_and_anchored():
    matcher = wildcard_to_regex("Demo-??.HTML")
    assert matcher.match("demo-ab.html")
    assert matcher.match("Demo-12.htmL")
    assert not matcher.match("demo-abc.html")
    assert not matcher.match("xdemo-ab.html")


def test_wildcard_escapes_regex_characters():
    matcher = wildcard_to_regex("a+b.html")
    assert matcher.match("a+b.html")
    assert not matcher.match("aab.html")
    assert not matcher.match("a+bxhtml")


def test_collect_only_html_files(tmp_path):
    (tmp_path / "b.html").write_text("")
    (tmp_path / "a.HTM").write_text("")
    (tmp_path / "notes.txt").write_text("")
    (tmp_path / "dir.html").mkdir()
    assert collect_animation_files(tmp_path) == ["a.HTM", "b.html"]


def test_resolve_exact_name(tmp_path):
    (tmp_path / "demo.html").write_text("")
    assert resolve_animation_files(tmp_path, "demo.html") == [tmp_path / "demo.html"]


def test_bare_name_is_not_treated_as_pattern(tmp_path):
    (tmp_path / "demo-1.html").write_text("")
    with pytest.raises(ResolutionError):
        resolve_animation_files(tmp_path, "demo.html")


def test_resolve_pattern_matches_sorted_html_files(tmp_path):
    for name in ["spin-b.html", "Spin-A.HTML", "spin-c.txt", "spin-long.html"]:
        (tmp_path / name).write_text("")
    assert resolve_animation_files(tmp_path, "spin-?.html") == [
        tmp_path / "Spin-A.HTML",
        tmp_path / "spin-b.html",
    ]


def test_resolve_pattern_without_matches(tmp_path):
    (tmp_path / "one.html").write_text("")
    with pytest.raises(ResolutionError, match="No HTML files"):
        resolve_animation_files(tmp_path, "two*")


def test_missing_input_directory(tmp_path):
    with pytest.raises(ResolutionError, match="to exist"):
        resolve_animation_files(tmp_path / "missing", "*.html")


def test_prepare_output_directory(tmp_path):
    target = tmp_path / "out" / "frames"
    assert prepare_output_directory(target) == target
    assert target.is_dir()


def test_prepare_output_directory_failure(tmp_path):
    blocker = tmp_path / "file"
    blocker.write_text("")
    with pytest.raises(ResolutionError, match="Unable to create"):
        prepare_output_directory(blocker / "out")
