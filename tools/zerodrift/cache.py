"""Config-aware execution cache for zero-drift validation steps.

A step's cache entry is a single file ``<cache_dir>/<step_id>.hash`` holding
the hex digest of the step's configuration surface at the time the step last
succeeded. An entry is only ever written after a successful run, and a
missing or unreadable entry always counts as a miss.
"""

from __future__ import annotations

import glob
import hashlib
import os
import shutil
from abc import ABCMeta, abstractmethod
from typing import Iterable, List, Mapping, Optional

from . import log as xlog
from .steps import VALIDATION_STEPS, CacheStrategy, StepId, ValidationStep

DEFAULT_CACHE_DIR_REL = ".validation-cache"
CACHE_ENTRY_SUFFIX = ".hash"
_GLOB_MAGIC = ("*", "?", "[")


def _norm(path: str) -> str:
    return path.replace("\\", "/").strip("/")


def _mtime_ns(stat_result) -> int:
    raw = getattr(stat_result, "st_mtime_ns", None)
    if raw is not None:
        return int(raw)
    return int(float(stat_result.st_mtime) * 1000000000.0)


def _step_token(step_id: object) -> str:
    if isinstance(step_id, StepId):
        return step_id.value
    return str(step_id or "").strip()


class ConfigSurfaceResolver(metaclass=ABCMeta):
    """Expands configuration-surface patterns into concrete files."""

    @abstractmethod
    def resolve(self, pattern: str) -> List[str]:
        """Return the sorted absolute paths of regular files matching ``pattern``."""


class GlobSurfaceResolver(ConfigSurfaceResolver):
    """Native glob expansion rooted at the repository root.

    Patterns without wildcards name a single file. Patterns that match
    nothing, or whose base directory does not exist, resolve to no files.
    """

    def __init__(self, repo_root: str):
        self.repo_root = os.path.normpath(os.path.abspath(repo_root))

    def resolve(self, pattern: str) -> List[str]:
        token = _norm(str(pattern or ""))
        if not token:
            return []
        if not any(flag in token for flag in _GLOB_MAGIC):
            path = os.path.join(self.repo_root, token.replace("/", os.sep))
            return [path] if os.path.isfile(path) else []
        try:
            matches = glob.glob(os.path.join(self.repo_root, token.replace("/", os.sep)))
        except OSError:
            return []
        return sorted(os.path.normpath(path) for path in matches if os.path.isfile(path))


def compute_config_hash(repo_root: str, patterns: Iterable[str], resolver: Optional[ConfigSurfaceResolver] = None) -> str:
    """Fold path, content and mtime of every file in the surface into one digest."""

    root = os.path.normpath(os.path.abspath(repo_root))
    surface = resolver or GlobSurfaceResolver(root)
    files = set()
    for pattern in patterns:
        try:
            files.update(surface.resolve(pattern))
        except OSError:
            continue

    ordered = sorted((_norm(os.path.relpath(path, root)), path) for path in files)
    digest = hashlib.sha256()
    for rel, path in ordered:
        try:
            with open(path, "rb") as handle:
                content = handle.read()
            mtime = _mtime_ns(os.stat(path))
        except OSError:
            continue
        digest.update(rel.encode("utf-8"))
        digest.update(b"\0")
        digest.update(content)
        digest.update(b"\0")
        digest.update(str(mtime).encode("ascii"))
        digest.update(b"\n")
    return digest.hexdigest()


class CacheManager:
    """Decides per step whether a previous success can be trusted."""

    def __init__(
        self,
        repo_root: str,
        cache_dir: str = "",
        resolver: Optional[ConfigSurfaceResolver] = None,
        steps: Mapping[StepId, ValidationStep] = VALIDATION_STEPS,
        trace: bool = False,
    ):
        self.repo_root = os.path.normpath(os.path.abspath(repo_root))
        cache_dir = cache_dir or DEFAULT_CACHE_DIR_REL
        if not os.path.isabs(cache_dir):
            cache_dir = os.path.join(self.repo_root, cache_dir)
        self.cache_dir = os.path.normpath(cache_dir)
        self.resolver = resolver or GlobSurfaceResolver(self.repo_root)
        self.steps = steps
        self.trace = trace

    def entry_path(self, step_id: StepId) -> str:
        return os.path.join(self.cache_dir, _step_token(step_id) + CACHE_ENTRY_SUFFIX)

    def _step(self, step_id: StepId) -> Optional[ValidationStep]:
        token = _step_token(step_id)
        for key, step in self.steps.items():
            if _step_token(key) == token:
                return step
        return None

    def config_hash(self, step_id: StepId) -> str:
        step = self._step(step_id)
        patterns = step.config_patterns if step else ()
        return compute_config_hash(self.repo_root, patterns, resolver=self.resolver)

    def read_digest(self, step_id: StepId) -> str:
        path = self.entry_path(step_id)
        if not os.path.isfile(path):
            return ""
        try:
            with open(path, "r", encoding="utf-8") as handle:
                return handle.read().strip()
        except (OSError, ValueError):
            return ""

    def should_invalidate(self, step_id: StepId, strategy: CacheStrategy, force: bool = False) -> bool:
        """Return True when the step must run; False is a safe cache hit."""

        if force or strategy in (CacheStrategy.NONE, CacheStrategy.MINIMAL):
            return True
        # Anything that is not config-aware, "smart" included, never trusts a prior result.
        if strategy != CacheStrategy.CONFIG_AWARE:
            return True
        if self._step(step_id) is None:
            return True
        cached = self.read_digest(step_id)
        if not cached:
            return True
        return self.config_hash(step_id) != cached

    def record_success(self, step_id: StepId, strategy: CacheStrategy) -> bool:
        """Persist the current digest after a successful run; never raises."""

        if strategy != CacheStrategy.CONFIG_AWARE:
            return False
        if self._step(step_id) is None:
            return False
        path = self.entry_path(step_id)
        try:
            os.makedirs(self.cache_dir, exist_ok=True)
            digest = self.config_hash(step_id)
            with open(path, "w", encoding="utf-8", newline="\n") as handle:
                handle.write(digest)
        except OSError as exc:
            xlog.cache_write_failed(_step_token(step_id), str(exc), trace=self.trace)
            return False
        return True

    def clear(self) -> bool:
        if not os.path.isdir(self.cache_dir):
            xlog.cache_cleared(self.cache_dir, trace=self.trace)
            return True
        try:
            shutil.rmtree(self.cache_dir)
        except OSError as exc:
            xlog.cache_write_failed("", "clear failed: {}".format(exc), trace=self.trace)
            return False
        xlog.cache_cleared(self.cache_dir, trace=self.trace)
        return True
