# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Content-addressed compilation cache.

Layout under the cache root:

  cp<major><minor>/entries/<digest>/
    <artifact file>
    metadata.json

An entry is published by building it in a hidden temporary directory and
renaming that directory into place, so readers never see a partial entry and
a losing concurrent writer simply reads the winner back. Entries are never
modified in place: a stale or corrupt entry is evicted (renamed to a
tombstone, then deleted) and rebuilt.
"""

from __future__ import annotations

import json
import os
import platform
import secrets
import shutil
import sys
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Iterable, Iterator, Mapping, Sequence

from oxbind.core.errors import CacheIntegrityMismatch
from oxbind.core.hashing import canonical_json_bytes, file_sha256, normalize_source, sha256_hex
from oxbind.core.logging import get_logger
from oxbind.deps.spec import DependencySpec

from .toolchain import Artifact

logger = get_logger("cache")

METADATA_NAME = "metadata.json"
CACHE_FORMAT = "oxbind-cache"
CACHE_FORMAT_VERSION = 1
DEFAULT_MAX_AGE = timedelta(days=30)
# Temporaries older than this are leftovers of crashed writers.
_STALE_TEMP_AGE = timedelta(hours=1)
# Attempts to stage an entry whose temporary directory vanished mid-copy.
_PUBLISH_ATTEMPTS = 3


def cache_namespace() -> str:
	"""Per-host-version directory name, e.g. `cp312`."""
	return f"cp{sys.version_info.major}{sys.version_info.minor}"


def host_tag() -> str:
	return f"{sys.implementation.name}-{sys.version_info.major}.{sys.version_info.minor}-{platform.machine()}-{sys.platform}"


@dataclass(frozen=True)
class CacheKey:
	"""SHA-256 over the inputs that determine a compiled artifact."""

	digest: str

	@classmethod
	def compute(
		cls,
		source: str,
		config: Mapping[str, Any],
		dependencies: Iterable[DependencySpec] = (),
		*,
		extra: Mapping[str, Any] | None = None,
	) -> "CacheKey":
		payload = {
			"source": normalize_source(source),
			"config": dict(config),
			"dependencies": sorted((d.normalized().to_dict() for d in dependencies), key=lambda d: d["name"]),
			"extra": dict(extra or {}),
		}
		return cls(sha256_hex(canonical_json_bytes(payload)))

	@property
	def short(self) -> str:
		return self.digest[:12]

	def __str__(self) -> str:
		return self.digest


@dataclass(frozen=True)
class CacheEntry:
	key: str
	artifact_path: Path
	created_at: datetime
	checksum: str
	symbols: tuple[str, ...] = ()

	@property
	def directory(self) -> Path:
		return self.artifact_path.parent

	def age(self, now: datetime | None = None) -> timedelta:
		return (now or datetime.now(timezone.utc)) - self.created_at


@dataclass
class CacheStats:
	hits: int = 0
	misses: int = 0
	builds: int = 0


def _parse_time(raw: Any) -> datetime:
	if not isinstance(raw, str):
		raise ValueError("created_at must be a string")
	ts = datetime.fromisoformat(raw.replace("Z", "+00:00"))
	if ts.tzinfo is None:
		ts = ts.replace(tzinfo=timezone.utc)
	return ts


def _read_metadata(directory: Path) -> dict[str, Any]:
	data = json.loads((directory / METADATA_NAME).read_text(encoding="utf-8"))
	if not isinstance(data, dict):
		raise ValueError("metadata must be an object")
	return data


class CompilationCache:
	"""
	Durable artifact store keyed by `CacheKey`.

	`verify(path, symbols)` is called on lookup and must return True when the
	artifact loads and exports every recorded symbol. Without it only the
	checksum is checked.
	"""

	def __init__(self, root: Path, *, verify: Callable[[Path, Sequence[str]], bool] | None = None) -> None:
		self.root = Path(root)
		self.base = self.root / cache_namespace()
		self.entries_dir = self.base / "entries"
		self._verify = verify
		# digest -> [lock, waiters]; entries go away when the last waiter leaves.
		self._locks: dict[str, list[Any]] = {}
		self._guard = threading.Lock()
		self.stats = CacheStats()

	@contextmanager
	def _key_lock(self, digest: str) -> Iterator[None]:
		with self._guard:
			slot = self._locks.get(digest)
			if slot is None:
				slot = self._locks[digest] = [threading.Lock(), 0]
			slot[1] += 1
		try:
			with slot[0]:
				yield
		finally:
			with self._guard:
				slot[1] -= 1
				if slot[1] == 0:
					del self._locks[digest]

	def _count(self, field: str) -> None:
		with self._guard:
			setattr(self.stats, field, getattr(self.stats, field) + 1)

	def entry_dir(self, key: CacheKey) -> Path:
		return self.entries_dir / key.digest

	def _validate(self, key: CacheKey, directory: Path) -> Artifact | None:
		if not (directory / METADATA_NAME).exists():
			return None
		try:
			meta = _read_metadata(directory)
		except (OSError, ValueError) as err:
			raise CacheIntegrityMismatch(message=f"unreadable metadata: {err}", key=key.digest) from err
		if meta.get("format") != CACHE_FORMAT or meta.get("version") != CACHE_FORMAT_VERSION:
			raise CacheIntegrityMismatch(message="unknown metadata format", key=key.digest)
		if meta.get("key") != key.digest:
			raise CacheIntegrityMismatch(message="metadata key does not match entry", key=key.digest)
		name = meta.get("artifact")
		if not isinstance(name, str) or "/" in name or "\\" in name:
			raise CacheIntegrityMismatch(message="metadata names no artifact", key=key.digest)
		artifact = directory / name
		if not artifact.is_file():
			raise CacheIntegrityMismatch(message="artifact file is missing", key=key.digest)
		expected = meta.get("checksum")
		got = f"sha256:{file_sha256(artifact)}"
		if expected != got:
			raise CacheIntegrityMismatch(
				message="artifact checksum mismatch",
				key=key.digest,
				sha256_expected=expected if isinstance(expected, str) else None,
				sha256_got=got,
			)
		symbols = tuple(str(s) for s in meta.get("symbols", ()))
		if self._verify is not None and not self._verify(artifact, symbols):
			raise CacheIntegrityMismatch(message="artifact does not load or lacks symbols", key=key.digest)
		return Artifact(path=artifact, checksum=got, symbols=symbols, from_cache=True)

	def lookup(self, key: CacheKey) -> Artifact | None:
		"""Return the cached artifact for `key`, or None. Integrity problems are misses."""
		try:
			return self._validate(key, self.entry_dir(key))
		except CacheIntegrityMismatch as err:
			logger.debug("cache entry %s rejected: %s", key.short, err.message)
			return None

	def get_or_build(self, key: CacheKey, build_fn: Callable[[], Artifact]) -> Artifact:
		"""Return the artifact for `key`, calling `build_fn` only on a miss."""
		hit = self.lookup(key)
		if hit is not None:
			self._count("hits")
			logger.debug("cache hit %s", key.short)
			return hit
		with self._key_lock(key.digest):
			hit = self.lookup(key)
			if hit is not None:
				self._count("hits")
				logger.debug("cache hit %s (built concurrently)", key.short)
				return hit
			self._count("misses")
			logger.debug("cache miss %s", key.short)
			artifact = build_fn()
			self._count("builds")
			return self.publish(key, artifact)

	def publish(self, key: CacheKey, artifact: Artifact) -> Artifact:
		"""Copy `artifact` into the cache under `key` with an atomic rename."""
		for attempt in range(1, _PUBLISH_ATTEMPTS + 1):
			self.entries_dir.mkdir(parents=True, exist_ok=True)
			tmp = self.entries_dir / f".{key.digest}.tmp.{os.getpid()}.{secrets.token_hex(4)}"
			tmp.mkdir()
			try:
				return self._publish_from(key, artifact, tmp)
			except FileNotFoundError:
				if tmp.exists() or not artifact.path.exists() or attempt == _PUBLISH_ATTEMPTS:
					raise
				# Another process swept the temporary directory away.
				logger.debug("cache temporary for %s vanished; retrying (%d)", key.short, attempt)
			finally:
				if tmp.exists():
					shutil.rmtree(tmp, ignore_errors=True)
		raise AssertionError("unreachable")

	def _publish_from(self, key: CacheKey, artifact: Artifact, tmp: Path) -> Artifact:
		final = self.entry_dir(key)
		dst = tmp / artifact.path.name
		shutil.copy2(artifact.path, dst)
		checksum = f"sha256:{file_sha256(dst)}"
		meta = {
			"format": CACHE_FORMAT,
			"version": CACHE_FORMAT_VERSION,
			"key": key.digest,
			"artifact": dst.name,
			"checksum": checksum,
			"created_at": datetime.now(timezone.utc).isoformat(),
			"symbols": list(artifact.symbols),
			"host": host_tag(),
		}
		(tmp / METADATA_NAME).write_bytes(canonical_json_bytes(meta))
		for evicted in (False, True):
			try:
				os.rename(tmp, final)
				break
			except FileNotFoundError:
				raise
			except OSError:
				winner = self.lookup(key)
				if winner is not None:
					logger.debug("cache entry %s published concurrently; using it", key.short)
					return winner
				if evicted:
					raise
				# A stale entry is in the way.
				self._evict(final)
		logger.debug("cache stored %s", key.short)
		return Artifact(path=final / artifact.path.name, checksum=checksum, symbols=artifact.symbols)

	def _evict(self, directory: Path) -> bool:
		tomb = directory.with_name(f".{directory.name}.dead.{os.getpid()}.{secrets.token_hex(4)}")
		try:
			os.rename(directory, tomb)
		except FileNotFoundError:
			return False
		shutil.rmtree(tomb, ignore_errors=True)
		logger.debug("cache evicted %s", directory.name[:12])
		return True

	def _sweep_hidden(self, directory: Path) -> None:
		"""Delete a tombstone, or a temporary abandoned by a crashed writer."""
		if ".dead." not in directory.name:
			try:
				age = time.time() - directory.stat().st_mtime
			except FileNotFoundError:
				return
			# Younger temporaries belong to writers that are still publishing.
			if age <= _STALE_TEMP_AGE.total_seconds():
				return
		shutil.rmtree(directory, ignore_errors=True)

	def invalidate(self, key: CacheKey) -> bool:
		return self._evict(self.entry_dir(key))

	def entries(self) -> list[CacheEntry]:
		"""Readable entries, oldest first."""
		out: list[CacheEntry] = []
		if not self.entries_dir.is_dir():
			return out
		for d in self.entries_dir.iterdir():
			if d.name.startswith(".") or not d.is_dir():
				continue
			try:
				meta = _read_metadata(d)
				out.append(
					CacheEntry(
						key=str(meta["key"]),
						artifact_path=d / str(meta["artifact"]),
						created_at=_parse_time(meta["created_at"]),
						checksum=str(meta["checksum"]),
						symbols=tuple(str(s) for s in meta.get("symbols", ())),
					)
				)
			except (OSError, ValueError, KeyError):
				continue
		out.sort(key=lambda e: e.created_at)
		return out

	def cleanup(self, max_age: timedelta | float = DEFAULT_MAX_AGE, *, now: datetime | None = None) -> int:
		"""
		Remove entries older than `max_age` (a timedelta or seconds).

		Unreadable entries and abandoned temporaries are removed too. Returns
		the number of entries removed.
		"""
		if not isinstance(max_age, timedelta):
			max_age = timedelta(seconds=float(max_age))
		now = now or datetime.now(timezone.utc)
		removed = 0
		if not self.entries_dir.is_dir():
			return removed
		for d in list(self.entries_dir.iterdir()):
			if d.name.startswith("."):
				self._sweep_hidden(d)
				continue
			try:
				created: datetime | None = _parse_time(_read_metadata(d)["created_at"])
			except (OSError, ValueError, KeyError):
				# Entries are renamed into place whole; unreadable metadata is corruption.
				created = None
			if created is None or now - created > max_age:
				if self._evict(d):
					removed += 1
		logger.info("cache cleanup removed %d entr%s", removed, "y" if removed == 1 else "ies")
		return removed

	def clear(self) -> int:
		"""
		Remove every entry. Returns the number of entries removed.

		Temporaries of in-flight publishes are left alone.
		"""
		removed = 0
		if not self.entries_dir.is_dir():
			return removed
		for d in list(self.entries_dir.iterdir()):
			if d.name.startswith("."):
				self._sweep_hidden(d)
				continue
			if self._evict(d):
				removed += 1
		logger.info("cache cleared (%d entries)", removed)
		return removed

	def size_bytes(self) -> int:
		total = 0
		if not self.base.exists():
			return total
		for dirpath, _dirs, files in os.walk(self.base):
			for name in files:
				try:
					total += os.path.getsize(os.path.join(dirpath, name))
				except OSError:
					continue
		return total


__all__ = [
	"CacheEntry",
	"CacheKey",
	"CacheStats",
	"CompilationCache",
	"DEFAULT_MAX_AGE",
	"cache_namespace",
]
