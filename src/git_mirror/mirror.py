"""One-way directory mirroring with exclude and preserve rules.

The target is cleared (except for preserved top-level names) and the source is
copied back in. Symbolic links in the source are followed, so the backup holds
real file content. File copies run on a bounded thread pool.
"""

import logging
import os
import shutil
from collections.abc import Iterable
from concurrent.futures import FIRST_EXCEPTION, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from pathlib import Path

from .constants import APP_NAME, COPY_WORKERS

logger = logging.getLogger(APP_NAME)


class MirrorError(RuntimeError):
    """A filesystem failure while mirroring, carrying the offending path."""

    def __init__(self, message: str, path: Path | None = None):
        super().__init__(message)
        self.path = path


@dataclass
class MirrorStats:
    """Counts accumulated during a single mirror pass.

    Attributes:
        files_copied (int): Regular files written into the target.
        dirs_created (int): Directories created in the target.
        entries_removed (int): Top-level target entries deleted while clearing.
        entries_skipped (int): Source entries skipped by the exclude set.
        bytes_copied (int): Total size of the copied files.
    """

    files_copied: int = 0
    dirs_created: int = 0
    entries_removed: int = 0
    entries_skipped: int = 0
    bytes_copied: int = 0


def _remove_entry(path: Path) -> None:
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
    else:
        path.unlink()


def clear_target(target: Path, preserve_names: Iterable[str]) -> int:
    """Deletes every top-level entry of `target` whose name is not preserved.

    Only immediate children are checked; a non-preserved directory is removed
    with everything below it.

    Returns:
        int: The number of top-level entries removed.
    """
    keep = set(preserve_names)
    removed = 0
    for entry in sorted(target.iterdir()):
        if entry.name in keep:
            continue
        try:
            _remove_entry(entry)
        except OSError as e:
            raise MirrorError(f"Could not remove {entry}: {e}", entry) from e
        removed += 1
    logger.debug(f"CLEAR {target}: removed {removed} entries.")
    return removed


def _raise_walk_error(error: OSError) -> None:
    raise error


def _copy_file(src: Path, dst: Path) -> int:
    try:
        # copy2 follows symlinks by default, writing the link target's content.
        shutil.copy2(src, dst)
        return dst.stat().st_size
    except OSError as e:
        raise MirrorError(f"Could not copy {src} -> {dst}: {e}", src) from e


def mirror(
    source: Path,
    target: Path,
    exclude_names: Iterable[str],
    preserve_names: Iterable[str],
    max_workers: int = COPY_WORKERS,
) -> MirrorStats:
    """Makes `target` a copy of `source`, subject to exclude and preserve rules.

    Steps:
    1. Validates the source and creates the target (with parents) if missing.
    2. Clears the target, keeping top-level names listed in `preserve_names`.
    3. Copies the source tree, skipping any entry (at any depth) whose name is in
       `exclude_names`. Surviving preserved files are overwritten when the source
       has a same-named file.

    Args:
        source (Path): The tree to read. It is never modified.
        target (Path): The tree to write.
        exclude_names (Iterable[str]): Base names never copied.
        preserve_names (Iterable[str]): Top-level target names never deleted.
        max_workers (int, optional): Ceiling on concurrent file copies.

    Returns:
        MirrorStats: What the pass did.

    Raises:
        MirrorError: On any filesystem failure; partial results are not rolled back.
    """
    source = Path(source).resolve()
    target = Path(target).resolve()
    excluded = set(exclude_names)
    stats = MirrorStats()

    if not source.is_dir():
        raise MirrorError(f"Source directory does not exist: {source}", source)
    if target == source or source in target.parents:
        raise MirrorError(
            f"Backup path {target} must not be inside the source {source}", target
        )
    if target in source.parents:
        # Clearing the target would delete the source along with it.
        raise MirrorError(
            f"Source {source} must not be inside the backup path {target}", source
        )

    try:
        target.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise MirrorError(f"Could not create backup directory {target}: {e}", target) from e

    stats.entries_removed = clear_target(target, preserve_names)

    logger.info(f"MIRROR {source} -> {target}")
    futures: list[Future[int]] = []
    # (st_dev, st_ino) of every directory on the path from the source root,
    # keyed by walk path. A symlink back onto that chain is a cycle.
    root_st = source.stat()
    ancestry: dict[str, frozenset[tuple[int, int]]] = {
        str(source): frozenset({(root_st.st_dev, root_st.st_ino)})
    }
    with ThreadPoolExecutor(max_workers=max(1, max_workers)) as pool:
        try:
            for dirpath, dirnames, filenames in os.walk(
                source, followlinks=True, onerror=_raise_walk_error
            ):
                current = Path(dirpath)
                dest_dir = target / current.relative_to(source)
                ancestors = ancestry.pop(dirpath)

                # Prune excluded directories and cycles in place so os.walk skips them.
                kept = []
                for name in dirnames:
                    if name in excluded:
                        stats.entries_skipped += 1
                        continue
                    st = (current / name).stat()
                    key = (st.st_dev, st.st_ino)
                    if key in ancestors:
                        logger.warning(f"MIRROR: skipping symlink cycle {current / name}")
                        stats.entries_skipped += 1
                        continue
                    ancestry[os.path.join(dirpath, name)] = ancestors | {key}
                    kept.append(name)
                dirnames[:] = kept

                for name in kept:
                    dest = dest_dir / name
                    if dest.is_dir():
                        continue
                    try:
                        if dest.exists() or dest.is_symlink():
                            _remove_entry(dest)
                        dest.mkdir()
                    except OSError as e:
                        raise MirrorError(f"Could not create {dest}: {e}", dest) from e
                    stats.dirs_created += 1

                for name in filenames:
                    if name in excluded:
                        stats.entries_skipped += 1
                        continue
                    src_file = current / name
                    if not src_file.exists():
                        logger.warning(f"MIRROR: skipping dangling symlink {src_file}")
                        stats.entries_skipped += 1
                        continue
                    dest = dest_dir / name
                    if dest.is_dir() and not dest.is_symlink():
                        try:
                            shutil.rmtree(dest)
                        except OSError as e:
                            raise MirrorError(f"Could not replace {dest}: {e}", dest) from e
                    futures.append(pool.submit(_copy_file, src_file, dest))
        except OSError as e:
            raise MirrorError(f"Could not read source tree {source}: {e}", source) from e
        finally:
            done, pending = wait(futures, return_when=FIRST_EXCEPTION)
            for f in pending:
                f.cancel()

        for f in futures:
            if f.cancelled():
                continue
            stats.bytes_copied += f.result()
            stats.files_copied += 1

    logger.info(
        f"MIRROR done: {stats.files_copied} files, {stats.dirs_created} dirs, "
        f"{stats.entries_skipped} skipped, {stats.entries_removed} removed."
    )
    return stats
