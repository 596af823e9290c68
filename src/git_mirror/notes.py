import logging
import os
from pathlib import Path

from send2trash import send2trash

from .constants import APP_NAME

logger = logging.getLogger(APP_NAME)

EMPTY_NOTE_MARKER = "-"
"""str: The entire content of a page an outliner creates but nobody wrote in."""

SKIPPED_FOLDERS = {"logseq", ".trash"}
"""set[str]: Lower-cased folder names never scanned for empty notes."""


def is_empty_note(path: Path) -> bool:
    """Whether a Markdown note holds nothing but the empty-outline marker."""
    try:
        return path.read_text(encoding="utf-8").strip() == EMPTY_NOTE_MARKER
    except (OSError, UnicodeDecodeError) as e:
        logger.error(f"Error reading {path}: {e}")
        return False


def find_empty_notes(directory: Path) -> list[Path]:
    """Lists empty Markdown notes below `directory`, skipping internal folders."""
    found = []
    for dirpath, dirnames, filenames in os.walk(directory):
        dirnames[:] = sorted(d for d in dirnames if d.lower() not in SKIPPED_FOLDERS)
        for name in sorted(filenames):
            path = Path(dirpath) / name
            if path.suffix.lower() == ".md" and is_empty_note(path):
                found.append(path)
    return found


def prune_empty_notes(directory: Path, dry_run: bool = False) -> list[Path]:
    """Moves empty Markdown notes below `directory` to the system trash.

    Args:
        directory (Path): The notes tree to clean.
        dry_run (bool, optional): Only report what would be deleted.

    Returns:
        list[Path]: The notes that were (or would be) deleted.
    """
    deleted = []
    for path in find_empty_notes(directory):
        if dry_run:
            logger.info(f"CLEAN (dry run): would trash {path}")
            deleted.append(path)
            continue
        try:
            send2trash(path)
        except OSError as e:
            logger.error(f"Error deleting {path}: {e}")
            continue
        logger.debug(f"CLEAN: trashed empty note {path}")
        deleted.append(path)

    logger.info(f"CLEAN {directory}: {len(deleted)} empty note(s).")
    return deleted
