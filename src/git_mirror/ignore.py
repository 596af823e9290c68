import logging
import os
from collections.abc import Iterable
from pathlib import Path

from .constants import APP_NAME, IGNORE_FILE_NAME

logger = logging.getLogger(APP_NAME)


def merge_patterns(existing: str, required: Iterable[str]) -> list[str]:
    """Unions the lines of an ignore manifest with a set of required patterns.

    Existing lines keep their order and come first; required patterns that are
    missing are appended. Blank lines and duplicates are dropped.
    """
    lines = [line for line in existing.splitlines() if line.strip()]
    lines.extend(p for p in required if p.strip())
    return list(dict.fromkeys(lines))


def ensure_ignore_patterns(directory: Path, required_patterns: Iterable[str]) -> list[str]:
    """Ensures the directory's .gitignore contains every required pattern.

    The file is rewritten with one pattern per line and exactly one trailing
    newline, so running this twice with the same patterns leaves it byte-identical.

    Args:
        directory (Path): The directory holding the ignore manifest.
        required_patterns (Iterable[str]): Patterns that must be present.

    Returns:
        list[str]: The patterns that were not present before this call.
    """
    gitignore = directory / IGNORE_FILE_NAME
    required = list(required_patterns)

    content = ""
    if gitignore.exists():
        content = gitignore.read_text(encoding="utf-8")

    before = set(merge_patterns(content, []))
    merged = merge_patterns(content, required)
    added = [p for p in merged if p not in before]
    if not merged:
        # Nothing to record; a blank or missing manifest is left as it is.
        return added
    new_content = "\n".join(merged) + "\n"

    if new_content == content:
        logger.debug(f"IGNORE {gitignore}: up to date.")
        return added

    tmp_file = gitignore.with_name(IGNORE_FILE_NAME + ".tmp")
    try:
        with open(tmp_file, "w", encoding="utf-8", newline="\n") as f:
            f.write(new_content)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_file, gitignore)
    except OSError:
        tmp_file.unlink(missing_ok=True)
        raise

    if added:
        logger.info(f"IGNORE {gitignore}: added {', '.join(added)}")
    return added
