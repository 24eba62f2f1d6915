# src/artifacts/bundle.py — v1
"""Zip bundles: the byte format of every artifact passed between stages.

Entries are written in sorted order with a fixed timestamp so that packing
the same file set twice yields identical bytes (and the same sha256).
"""

from __future__ import annotations

import fnmatch
import io
import zipfile
from collections.abc import Iterable, Iterator
from pathlib import Path, PurePosixPath

_FIXED_DATE = (1980, 1, 1, 0, 0, 0)


def pack_files(files: dict[str, bytes]) -> bytes:
    """Pack a {relative_path: content} mapping into a zip bundle."""
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        for rel in sorted(files):
            info = zipfile.ZipInfo(_normalize(rel), date_time=_FIXED_DATE)
            info.compress_type = zipfile.ZIP_DEFLATED
            info.external_attr = 0o644 << 16
            zf.writestr(info, files[rel])
    return buf.getvalue()


def pack_directory(
    root: Path,
    patterns: Iterable[str] = ("**/*",),
    exclude: Iterable[str] = (),
) -> bytes:
    """Pack files under root matching any glob pattern.

    Patterns follow buildspec semantics: ``**/*`` matches every file,
    ``*.html`` only top-level HTML files.
    """
    return pack_files(dict(collect_files(root, patterns, exclude)))


def collect_files(
    root: Path,
    patterns: Iterable[str] = ("**/*",),
    exclude: Iterable[str] = (),
) -> Iterator[tuple[str, bytes]]:
    """Yield (relative_path, content) for files under root matching patterns."""
    root = Path(root)
    patterns = list(patterns)
    exclude = list(exclude)
    for path in sorted(root.rglob("*")):
        if not path.is_file():
            continue
        rel = path.relative_to(root).as_posix()
        if not any(_match(rel, p) for p in patterns):
            continue
        if any(_match(rel, p) for p in exclude):
            continue
        yield rel, path.read_bytes()


def iter_files(bundle: bytes) -> Iterator[tuple[str, bytes]]:
    """Yield (relative_path, content) for every file in a bundle."""
    with zipfile.ZipFile(io.BytesIO(bundle)) as zf:
        for info in zf.infolist():
            if info.is_dir():
                continue
            yield _normalize(info.filename), zf.read(info)


def unpack(bundle: bytes, target: Path) -> list[Path]:
    """Extract a bundle into target, refusing entries that escape it."""
    target = Path(target)
    target.mkdir(parents=True, exist_ok=True)
    written: list[Path] = []
    for rel, content in iter_files(bundle):
        dest = target / rel
        dest.parent.mkdir(parents=True, exist_ok=True)
        dest.write_bytes(content)
        written.append(dest)
    return written


def _normalize(name: str) -> str:
    parts = PurePosixPath(name.replace("\\", "/")).parts
    if not parts or any(p == ".." for p in parts) or parts[0] == "/":
        raise ValueError(f"Unsafe bundle entry: {name!r}")
    return "/".join(parts)


def _match(rel: str, pattern: str) -> bool:
    if pattern in ("**/*", "**"):
        return True
    if pattern.startswith("**/"):
        # "**/x" matches x at any depth, including the root
        tail = pattern[3:]
        return fnmatch.fnmatch(rel, pattern) or fnmatch.fnmatch(rel, tail) or any(
            fnmatch.fnmatch(rel.split("/", i)[-1], tail)
            for i in range(1, rel.count("/") + 1)
        )
    if "/" not in pattern:
        return "/" not in rel and fnmatch.fnmatch(rel, pattern)
    return fnmatch.fnmatch(rel, pattern)
