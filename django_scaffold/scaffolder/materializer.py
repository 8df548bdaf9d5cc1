"""Writes a rendered plan onto the project root.

Directories are created if absent.  Existing files are compared with the
rendered content and left alone when identical; otherwise the overwrite
policy decides.  Every write goes through a temporary file in the target
directory followed by ``os.replace``, so a failed write never leaves a
truncated file behind.
"""

from __future__ import annotations

import errno
import logging
import os
import sys
import tempfile
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from pathlib import Path

from django_scaffold.config import CredentialsMode
from django_scaffold.errors import DiskFull, MaterializeError, PathConflict, PermissionDenied
from django_scaffold.scaffolder.plan import DirSpec, MirrorSpec, OverwritePolicy, RenderedFile, RenderedPlan

logger = logging.getLogger(__name__)

DEFAULT_FILE_MODE = 0o644


@dataclass
class MaterializeResult:
    created_dirs: list[Path] = field(default_factory=list)
    written: list[Path] = field(default_factory=list)
    overwritten: list[Path] = field(default_factory=list)
    unchanged: list[Path] = field(default_factory=list)
    skipped: list[Path] = field(default_factory=list)
    linked: list[Path] = field(default_factory=list)

    @property
    def destructive_writes(self) -> int:
        return len(self.overwritten)

    def merge(self, other: "MaterializeResult") -> None:
        for name in ("created_dirs", "written", "overwritten", "unchanged", "skipped", "linked"):
            getattr(self, name).extend(getattr(other, name))

    def as_counts(self) -> dict[str, int]:
        return {
            "created_dirs": len(self.created_dirs),
            "written": len(self.written),
            "overwritten": len(self.overwritten),
            "unchanged": len(self.unchanged),
            "skipped": len(self.skipped),
            "linked": len(self.linked),
        }


class Materializer:
    """Materializes rendered plans under a single project root.

    Args:
        confirm: Callback asked before overwriting under ``PROMPT_OVERWRITE``.
        policy: Forces one policy for every existing file.  When ``None``,
            files directly under the root are prompted for and files in
            subdirectories are skipped.
        credentials_mode: How :class:`MirrorSpec` entries are realised.
    """

    def __init__(
        self,
        confirm: Callable[[str], bool],
        policy: OverwritePolicy | None = None,
        credentials_mode: CredentialsMode = CredentialsMode.SYMLINK,
    ) -> None:
        self.confirm = confirm
        self.policy = policy
        self.credentials_mode = credentials_mode
        # Previous bytes of files overwritten during the current materialize call.
        self._replaced: dict[Path, bytes] = {}

    def materialize(
        self,
        plan: RenderedPlan,
        root: Path,
        replaceable: Iterable[Path] = (),
    ) -> MaterializeResult:
        """Walk *plan* in order and bring *root* in line with it.

        Paths in *replaceable* were generated earlier in the same run (by
        ``startproject``) and are overwritten without asking.
        """
        root = Path(root)
        replace_ok = {Path(p).resolve() for p in replaceable}
        result = MaterializeResult()
        self._replaced = {}
        self._ensure_dir(root, None, result)

        for entry in plan.entries:
            target = root / entry.path
            if isinstance(entry, DirSpec):
                self._ensure_dir(target, entry.mode, result)
            elif isinstance(entry, RenderedFile):
                self._ensure_dir(target.parent, None, result)
                self._write_file(entry, target, result, target.resolve() in replace_ok)
            elif isinstance(entry, MirrorSpec):
                self._ensure_dir(target.parent, None, result)
                self._mirror(entry, target, root, result)
        return result

    # -- Directories -------------------------------------------------------

    def _ensure_dir(self, path: Path, mode: int | None, result: MaterializeResult) -> None:
        if path.is_dir():
            if mode is not None:
                _apply_mode(path, mode)
            return
        if path.exists() or path.is_symlink():
            raise PathConflict(path, "expected a directory, found a file")
        try:
            path.mkdir(parents=True, exist_ok=True)
        except (FileExistsError, NotADirectoryError) as exc:
            raise PathConflict(path, "a parent path is a file") from exc
        except OSError as exc:
            raise translate_os_error(exc, path) from exc
        if mode is not None:
            _apply_mode(path, mode)
        result.created_dirs.append(path)

    # -- Files -------------------------------------------------------------

    def _policy_for(self, entry: RenderedFile) -> OverwritePolicy:
        if self.policy is not None:
            return self.policy
        if entry.policy is not None:
            return entry.policy
        if "/" not in entry.path:
            return OverwritePolicy.PROMPT_OVERWRITE
        return OverwritePolicy.SKIP

    def _may_overwrite(self, rel_path: str, policy: OverwritePolicy) -> bool:
        if policy is OverwritePolicy.PROMPT_OVERWRITE:
            return self.confirm(f"{rel_path} already exists and differs. Overwrite it?")
        return False

    def _write_file(
        self,
        entry: RenderedFile,
        target: Path,
        result: MaterializeResult,
        replace_ok: bool,
    ) -> None:
        data = entry.content.encode("utf-8")
        if target.is_dir():
            raise PathConflict(target, "expected a file, found a directory")

        existed = target.exists() or target.is_symlink()
        if existed:
            current = _read_bytes(target)
            if current == data:
                result.unchanged.append(target)
                return
            if not replace_ok and not self._may_overwrite(entry.path, self._policy_for(entry)):
                logger.info("Keeping existing %s", entry.path)
                result.skipped.append(target)
                return

        atomic_write(target, data, entry.mode)
        if existed and current is not None:
            self._replaced[target] = current
        (result.overwritten if existed else result.written).append(target)

    # -- Mirrors -----------------------------------------------------------

    def _mirror(self, entry: MirrorSpec, target: Path, root: Path, result: MaterializeResult) -> None:
        """Expose ``entry.source`` at ``entry.path``.

        A mirror has no content of its own.  An existing mirror that still
        holds the source's bytes (or the bytes the source had before it was
        overwritten in this call) is brought in line silently.  Anything else
        is a local edit and follows the overwrite policy, skipping by default.
        """
        source = root / entry.source
        source_bytes = _read_bytes(source)
        if source_bytes is None:
            raise PathConflict(source, f"{entry.path} mirrors a file that does not exist")
        if target.is_dir() and not target.is_symlink():
            raise PathConflict(target, "expected a file, found a directory")

        link_text = os.path.relpath(source, target.parent)
        want_link = self.credentials_mode is CredentialsMode.SYMLINK
        is_link = target.is_symlink()
        existed = is_link or target.exists()

        if existed:
            if is_link and want_link and os.readlink(target) == link_text:
                result.unchanged.append(target)
                return
            current = _read_bytes(target)
            if not want_link and not is_link and current == source_bytes:
                result.unchanged.append(target)
                return
            in_sync = current is not None and current in (source_bytes, self._replaced.get(source))
            if not in_sync and not self._may_overwrite(entry.path, self.policy or OverwritePolicy.SKIP):
                logger.info("Keeping existing %s", entry.path)
                result.skipped.append(target)
                return

        if want_link:
            try:
                atomic_symlink(target, link_text)
            except MaterializeError:
                if sys.platform != "win32":
                    raise
                logger.warning("Symlinks unavailable; writing a copy at %s", entry.path)
            else:
                result.linked.append(target)
                return

        atomic_write(target, source_bytes, entry.mode)
        (result.overwritten if existed else result.written).append(target)


# ---------------------------------------------------------------------------
# Atomic primitives
# ---------------------------------------------------------------------------


def atomic_write(target: Path, data: bytes, mode: int | None = None) -> None:
    """Write *data* to *target* via a sibling temp file and ``os.replace``."""
    if mode is None:
        mode = _existing_mode(target) or DEFAULT_FILE_MODE
    try:
        fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.", suffix=".tmp")
    except OSError as exc:
        raise translate_os_error(exc, target) from exc

    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
        os.chmod(tmp_name, mode)
        os.replace(tmp_name, target)
    except OSError as exc:
        _discard(tmp_name)
        raise translate_os_error(exc, target) from exc
    except BaseException:
        _discard(tmp_name)
        raise


def atomic_symlink(target: Path, link_text: str) -> None:
    """Point *target* at *link_text*, replacing whatever is there atomically."""
    tmp_link = target.with_name(f".{target.name}.link.tmp")
    _discard(str(tmp_link))
    try:
        os.symlink(link_text, tmp_link)
        os.replace(tmp_link, target)
    except OSError as exc:
        _discard(str(tmp_link))
        raise translate_os_error(exc, target) from exc


def translate_os_error(exc: OSError, path: Path) -> MaterializeError:
    """Map an ``OSError`` onto the materializer's error taxonomy."""
    code = exc.errno
    if code in (errno.EACCES, errno.EPERM):
        return PermissionDenied(path, exc.strerror or "")
    if code in (errno.ENOSPC, getattr(errno, "EDQUOT", errno.ENOSPC)):
        return DiskFull(path, exc.strerror or "")
    if code in (errno.EEXIST, errno.ENOTDIR, errno.EISDIR):
        return PathConflict(path, exc.strerror or "")
    return MaterializeError(path, str(exc))


def _apply_mode(path: Path, mode: int) -> None:
    try:
        os.chmod(path, mode)
    except OSError as exc:
        raise translate_os_error(exc, path) from exc


def _read_bytes(path: Path) -> bytes | None:
    try:
        return path.read_bytes()
    except FileNotFoundError:
        return None
    except OSError as exc:
        raise translate_os_error(exc, path) from exc


def _existing_mode(path: Path) -> int | None:
    try:
        return path.stat().st_mode & 0o777
    except OSError:
        return None


def _discard(name: str) -> None:
    try:
        os.unlink(name)
    except FileNotFoundError:
        pass

