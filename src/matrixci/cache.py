# cache.py
from __future__ import annotations

import hashlib
import json
import tarfile
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Sequence, Tuple

from .model import ExecutionUnit

# ---------------------------------------------------------------------
# Unit-level caching:
#   cache_key = hash(
#       job name + platform,
#       step commands / actions,
#       cached dirs,
#       contents of declared input files (globs, relative to the workspace),
#   )
#
# Cache artifact:
#   root/<job>/<platform>/<key>.tar.gz + <key>.manifest.json
#
# Every (job, platform) writes only under its own directory, so units
# never touch each other's entries.
# ---------------------------------------------------------------------


DEFAULT_CACHE_DIR = ".matrixci/cache"
DEFAULT_CACHE_EXCLUDES = [
    ".git/**",
    ".matrixci/**",
    "**/__pycache__/**",
    "**/*.pyc",
    "**/.DS_Store",
]


@dataclass(frozen=True)
class CacheHit:
    hit: bool
    key: str
    reason: str  # human readable
    manifest: Dict


def _sha256_str(s: str) -> str:
    return hashlib.sha256(s.encode("utf-8")).hexdigest()


def _json_dumps_stable(obj) -> str:
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _relpath(p: Path, root: Path) -> str:
    return str(p.resolve().relative_to(root.resolve())).replace("\\", "/")


def _iter_files_under(root: Path) -> Iterable[Path]:
    # deterministic traversal
    for p in sorted(root.rglob("*")):
        if p.is_file():
            yield p


def _matches_any_glob(rel: str, globs: Sequence[str]) -> bool:
    rel_path = Path(rel)
    return any(rel_path.match(g) for g in globs)


def _hash_file_contents(path: Path) -> str:
    h = hashlib.sha256()
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(1024 * 1024), b""):
            h.update(chunk)
    return h.hexdigest()


def _resolve_globs(root: Path, patterns: Sequence[str]) -> List[Path]:
    """
    Expand input patterns into concrete files.
    Supports plain paths ("Cargo.lock"), dirs ("src/") and globs ("**/Cargo.toml").
    """
    out: List[Path] = []
    for pat in patterns:
        pat = pat.strip()
        if not pat:
            continue
        p = root / pat
        if p.is_file():
            out.append(p)
        elif p.is_dir():
            out.extend(_iter_files_under(p))
        else:
            out.extend(m for m in sorted(root.glob(pat)) if m.is_file())

    # De-dupe while preserving order
    seen = set()
    uniq: List[Path] = []
    for p in out:
        rp = str(p.resolve())
        if rp not in seen:
            seen.add(rp)
            uniq.append(p)
    return uniq


def compute_unit_cache_key(
    unit: ExecutionUnit,
    workspace: str | Path,
    *,
    dirs: Sequence[str],
    inputs: Sequence[str],
) -> Tuple[str, Dict]:
    """
    Returns (cache_key, manifest) where manifest is stored for explainability.
    """
    root = Path(workspace).resolve()

    steps = [
        {"name": s.name, "run": s.run, "uses": s.uses}
        for s in unit.job.steps
    ]

    file_fps = []
    for f in _resolve_globs(root, inputs):
        rel = _relpath(f, root)
        if _matches_any_glob(rel, DEFAULT_CACHE_EXCLUDES):
            continue
        file_fps.append((rel, _hash_file_contents(f)))
    file_fps.sort(key=lambda t: t[0])

    payload = {
        "v": 1,  # bump this if you change hashing format
        "job": unit.job.name,
        "platform": unit.platform.value,
        "steps": steps,
        "dirs": sorted(dirs),
        "inputs": file_fps,
    }
    key = _sha256_str(_json_dumps_stable(payload))
    manifest = {
        "key": key,
        "payload": payload,
        "generated_at_unix": int(time.time()),
    }
    return key, manifest


class CacheStore:
    """
    File-based cache store:
      root/
        <job_name>/
          <platform>/
            <key>.tar.gz
            <key>.manifest.json
    """

    def __init__(self, root: str | Path = DEFAULT_CACHE_DIR):
        self.root = Path(root).resolve()

    def _unit_dir(self, unit: ExecutionUnit) -> Path:
        d = self.root / unit.job.name / unit.platform.value
        d.mkdir(parents=True, exist_ok=True)
        return d

    def artifact_path(self, unit: ExecutionUnit, key: str) -> Path:
        return self._unit_dir(unit) / f"{key}.tar.gz"

    def manifest_path(self, unit: ExecutionUnit, key: str) -> Path:
        return self._unit_dir(unit) / f"{key}.manifest.json"

    def restore(self, unit: ExecutionUnit, workspace: str | Path, key: str, manifest: Dict) -> CacheHit:
        """
        Extract the artifact for `key` into the workspace.
        Restore is "overwrite by extraction".
        """
        art = self.artifact_path(unit, key)
        man = self.manifest_path(unit, key)

        if not art.exists() or not man.exists():
            return CacheHit(hit=False, key=key, reason="cache miss", manifest=manifest)

        try:
            with tarfile.open(str(art), mode="r:gz") as tar:
                if hasattr(tarfile, "data_filter"):
                    tar.extractall(path=str(workspace), filter="data")
                else:
                    tar.extractall(path=str(workspace))
        except (OSError, tarfile.TarError) as e:
            return CacheHit(hit=False, key=key, reason=f"cache exists but restore failed: {e}", manifest=manifest)

        try:
            stored = json.loads(man.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            stored = {}

        return CacheHit(hit=True, key=key, reason="cache hit: restored artifact", manifest=stored or manifest)

    def save(self, unit: ExecutionUnit, workspace: str | Path, key: str, manifest: Dict, *, dirs: Sequence[str]) -> Path:
        """
        Archive `dirs` (relative to the workspace) under `key`.
        Built in a tmp file, then renamed into place.
        """
        root = Path(workspace).resolve()
        art = self.artifact_path(unit, key)
        man = self.manifest_path(unit, key)

        tmp = art.with_name(art.name + ".tmp")
        try:
            with tarfile.open(str(tmp), mode="w:gz") as tar:
                for entry in dirs:
                    src = (root / entry).resolve()
                    if not src.exists():
                        continue
                    files = [src] if src.is_file() else list(_iter_files_under(src))
                    for f in files:
                        rel = _relpath(f, root)
                        if _matches_any_glob(rel, DEFAULT_CACHE_EXCLUDES):
                            continue
                        tar.add(str(f), arcname=rel, recursive=False)
            tmp.replace(art)
            man.write_text(json.dumps(manifest, sort_keys=True, indent=2, ensure_ascii=False), encoding="utf-8")
        finally:
            if tmp.exists():
                tmp.unlink()

        return art

    def prune(self, unit: ExecutionUnit, keep: int = 3) -> None:
        """
        Keep only the newest N artifacts for a unit.
        Uses file mtime as "newest".
        """
        d = self._unit_dir(unit)
        tars = sorted(d.glob("*.tar.gz"), key=lambda p: p.stat().st_mtime, reverse=True)
        for p in tars[keep:]:
            key = p.name[: -len(".tar.gz")]
            p.unlink()
            man = d / f"{key}.manifest.json"
            if man.exists():
                man.unlink()
