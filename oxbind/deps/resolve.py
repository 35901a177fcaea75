# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Merge and validate dependency declarations.

Merging deduplicates by crate name. Version constraints are reconciled by
specificity (more components wins); feature sets are unioned. Divergence that
cannot be reconciled is reported as a DependencyConflict: a warning by
default, an error when `strict` is requested.
"""

from __future__ import annotations

import re
import warnings
from dataclasses import replace
from pathlib import Path
from typing import Iterable

from oxbind.core.errors import ConfigError, DependencyConflict, DependencyConflictWarning
from oxbind.core.logging import get_logger

from .spec import DependencySpec

logger = get_logger("deps")

_NAME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9_-]*$")
_VERSION_PART_RE = re.compile(
	r"^(?:[\^~=]|[<>]=?)?\s*(?:\*|\d+(?:\.(?:\d+|\*))?(?:\.(?:\d+|\*))?(?:-[0-9A-Za-z.-]+)?(?:\+[0-9A-Za-z.-]+)?)$"
)


def version_specificity(version: str) -> int:
	"""
	Score how specific a version constraint is.

	"1" -> 1, "1.0" -> 2, "1.0.5" -> 3, "1.0.5-beta" -> 4. Compound
	constraints (">=1.0, <2.0") score as their most specific part.
	"""
	best = 0
	for part in version.split(","):
		clean = re.sub(r"^[\^~=><]+", "", part.strip())
		if not clean:
			continue
		score = len(clean.split("."))
		if "-" in clean or "+" in clean:
			score += 1
		best = max(best, score)
	return best


def _diverged(name: str, message: str, choices: list[str], strict: bool) -> None:
	if strict:
		raise DependencyConflict(
			message=message,
			name=name,
			choices=choices,
			hint="declare the dependency once, or make the constraints agree",
		)
	logger.warning("%s", message)
	warnings.warn(DependencyConflictWarning(message), stacklevel=4)


def resolve_version(v1: str | None, v2: str | None, name: str, *, strict: bool = False) -> str | None:
	"""Pick one of two version constraints for the same crate."""
	if v1 is None:
		return v2
	if v2 is None or v1 == v2:
		return v1
	s1 = version_specificity(v1)
	s2 = version_specificity(v2)
	if s1 > s2:
		logger.debug("dependency %s: choosing more specific %r over %r", name, v1, v2)
		return v1
	if s2 > s1:
		logger.debug("dependency %s: choosing more specific %r over %r", name, v2, v1)
		return v2
	_diverged(name, f"version conflict for {name}: {v1!r} vs {v2!r}; using {v1!r}", [v1, v2], strict)
	return v1


def _merge_pair(a: DependencySpec, b: DependencySpec, strict: bool) -> DependencySpec:
	version = resolve_version(a.version, b.version, a.name, strict=strict)
	path = a.path
	if path is None:
		path = b.path
	elif b.path is not None and b.path != a.path:
		_diverged(a.name, f"path conflict for {a.name}: {a.path} vs {b.path}; using {a.path}", [a.path, b.path], strict)
	git = a.git
	branch, tag, rev = a.branch, a.tag, a.rev
	if git is None:
		git, branch, tag, rev = b.git, b.branch, b.tag, b.rev
	elif b.git is not None and (b.git, b.branch, b.tag, b.rev) != (a.git, a.branch, a.tag, a.rev):
		_diverged(a.name, f"git conflict for {a.name}: {a.git} vs {b.git}; using {a.git}", [a.git, b.git], strict)
	if path is not None and git is not None:
		_diverged(a.name, f"dependency {a.name} names both a path and a git source; using the path", [path, git], strict)
		git, branch, tag, rev = None, None, None, None
	return DependencySpec(
		name=a.name,
		version=version,
		features=tuple(sorted(set(a.features) | set(b.features))),
		path=path,
		git=git,
		branch=branch,
		tag=tag,
		rev=rev,
		default_features=a.default_features or b.default_features,
	)


def merge(
	a: Iterable[DependencySpec],
	b: Iterable[DependencySpec],
	*,
	strict: bool = False,
) -> list[DependencySpec]:
	"""
	Merge two dependency lists into one spec per name.

	Order follows first appearance across `a` then `b`.
	"""
	merged: dict[str, DependencySpec] = {}
	for spec in [*a, *b]:
		prev = merged.get(spec.name)
		merged[spec.name] = spec.normalized() if prev is None else _merge_pair(prev, spec, strict)
	return list(merged.values())


def validate(specs: Iterable[DependencySpec]) -> list[str]:
	"""
	Check a merged dependency list.

	Hard problems (empty or invalid names, duplicates) raise ConfigError.
	Softer ones (unusual version syntax) are returned as warning strings and
	logged; cargo is the final judge of those.
	"""
	problems: list[str] = []
	seen: set[str] = set()
	for spec in specs:
		if not spec.name or not _NAME_RE.match(spec.name):
			raise ConfigError(message=f"invalid crate name {spec.name!r}", key=spec.name or None)
		if spec.name in seen:
			raise ConfigError(message=f"duplicate dependency {spec.name}; merge the lists first", key=spec.name)
		seen.add(spec.name)
		if spec.version is None and spec.path is None and spec.git is None:
			raise ConfigError(message=f"dependency {spec.name} needs a version, path or git source", key=spec.name)
		if spec.version is not None:
			for part in spec.version.split(","):
				if not _VERSION_PART_RE.match(part.strip()):
					problems.append(f"dependency {spec.name}: unusual version constraint {spec.version!r}")
					break
		if spec.git is not None and sum(x is not None for x in (spec.branch, spec.tag, spec.rev)) > 1:
			problems.append(f"dependency {spec.name}: more than one of branch/tag/rev is set")
	for p in problems:
		logger.warning("%s", p)
	return problems


def with_absolute_paths(specs: Iterable[DependencySpec], base: Path) -> list[DependencySpec]:
	"""Resolve relative path sources against `base` (the build project lives elsewhere)."""
	out: list[DependencySpec] = []
	for spec in specs:
		if spec.path is not None and not Path(spec.path).is_absolute():
			spec = replace(spec, path=str((base / spec.path).resolve()))
		out.append(spec)
	return out


__all__ = ["merge", "resolve_version", "validate", "version_specificity", "with_absolute_paths"]
