"""Tests for the .gitignore merge."""

import tempfile
from pathlib import Path

from hypothesis import given
from hypothesis import strategies as st

from git_mirror.constants import DEFAULT_IGNORES
from git_mirror.ignore import ensure_ignore_patterns, merge_patterns


def test_creates_manifest_when_absent(tmp_path: Path) -> None:
    """Verifies that a missing .gitignore is created with the required patterns."""
    added = ensure_ignore_patterns(tmp_path, [".recycle/", ".DS_Store"])

    assert added == [".recycle/", ".DS_Store"]
    assert (tmp_path / ".gitignore").read_text() == ".recycle/\n.DS_Store\n"
    assert not (tmp_path / ".gitignore.tmp").exists()


def test_existing_lines_keep_their_order(tmp_path: Path) -> None:
    """Verifies that user patterns stay first and are not duplicated."""
    (tmp_path / ".gitignore").write_text("*.log\n\n.DS_Store\n")

    added = ensure_ignore_patterns(tmp_path, [".DS_Store", ".recycle/"])

    assert added == [".recycle/"]
    assert (tmp_path / ".gitignore").read_text() == "*.log\n.DS_Store\n.recycle/\n"


def test_missing_trailing_newline_is_fixed(tmp_path: Path) -> None:
    (tmp_path / ".gitignore").write_text(".recycle/")

    added = ensure_ignore_patterns(tmp_path, [".recycle/"])

    assert added == []
    assert (tmp_path / ".gitignore").read_text() == ".recycle/\n"


def test_up_to_date_manifest_is_not_rewritten(tmp_path: Path) -> None:
    gitignore = tmp_path / ".gitignore"
    gitignore.write_text("\n".join(DEFAULT_IGNORES) + "\n")
    before = gitignore.stat().st_mtime_ns

    assert ensure_ignore_patterns(tmp_path, DEFAULT_IGNORES) == []
    assert gitignore.stat().st_mtime_ns == before


def test_blank_manifest_without_patterns_is_left_alone(tmp_path: Path) -> None:
    """Verifies that an empty merge neither strips the file nor creates one."""
    gitignore = tmp_path / ".gitignore"
    gitignore.write_text("\n")

    assert ensure_ignore_patterns(tmp_path, []) == []
    assert gitignore.read_bytes() == b"\n"

    gitignore.unlink()
    ensure_ignore_patterns(tmp_path, [])
    assert not gitignore.exists()


def test_merge_drops_blank_lines_and_duplicates() -> None:
    assert merge_patterns("a\n\na\nb\n", ["b", "", "c"]) == ["a", "b", "c"]


patterns = st.text(
    alphabet=st.characters(blacklist_categories=("Cs", "Cc", "Zl", "Zp")),
    min_size=1,
    max_size=12,
).filter(lambda s: s.strip() != "")


@given(
    existing=st.lists(patterns, max_size=6),
    required=st.lists(patterns, max_size=6),
)
def test_merge_is_idempotent_and_complete(existing: list[str], required: list[str]) -> None:
    """
    Property: after one merge every required pattern is present exactly once,
    and a second merge leaves the file byte-identical.
    """
    with tempfile.TemporaryDirectory() as tmp:
        directory = Path(tmp)
        gitignore = directory / ".gitignore"
        gitignore.write_bytes(("\n".join(existing) + "\n").encode("utf-8"))

        ensure_ignore_patterns(directory, required)
        first = gitignore.read_bytes()
        ensure_ignore_patterns(directory, required)

        assert gitignore.read_bytes() == first
        lines = first.decode("utf-8").splitlines()
        assert len(lines) == len(set(lines))
        for pattern in required:
            assert pattern in lines
        assert first.endswith(b"\n")
