# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Parse dependency declarations embedded in Rust source comments.

Two conventions are recognised:

  // deps: rand="0.8", serde={version="1", features=["derive"]}

  //! ```manifest
  //! [dependencies]
  //! rand = "0.8"
  //! ```

`cargo` is accepted as an alias for the marker word in both forms
(`// cargo-deps:` and ```` ```cargo ````).
"""

from __future__ import annotations

import re
import tomllib
from typing import Any, Iterable

from oxbind.core.errors import ConfigError
from oxbind.core.logging import get_logger

from .resolve import merge
from .spec import DependencySpec

logger = get_logger("deps")

_INLINE_RE = re.compile(r"^\s*//\s*(?:deps|cargo-deps)\s*:(?P<body>.*)$")
_FENCE_OPEN_RE = re.compile(r"^```\s*(?:manifest|cargo)\b")


def parse_toml_dependency(name: str, value: Any) -> DependencySpec:
	"""Build a DependencySpec from a `[dependencies]` TOML value."""
	if isinstance(value, str):
		return DependencySpec(name=name, version=value)
	if not isinstance(value, dict):
		raise ConfigError(message=f"dependency `{name}` must be a string or a table", key=name)
	features = value.get("features", [])
	if not isinstance(features, list) or not all(isinstance(f, str) for f in features):
		raise ConfigError(message=f"dependency `{name}`: features must be a list of strings", key=name)
	default_features = value.get("default-features", value.get("default_features", True))
	if not isinstance(default_features, bool):
		raise ConfigError(message=f"dependency `{name}`: default-features must be a boolean", key=name)

	def _opt(key: str) -> str | None:
		raw = value.get(key)
		if raw is None:
			return None
		if not isinstance(raw, str):
			raise ConfigError(message=f"dependency `{name}`: `{key}` must be a string", key=name)
		return raw

	return DependencySpec(
		name=name,
		version=_opt("version"),
		features=tuple(features),
		path=_opt("path"),
		git=_opt("git"),
		branch=_opt("branch"),
		tag=_opt("tag"),
		rev=_opt("rev"),
		default_features=default_features,
	)


def _split_top_level(text: str) -> list[str]:
	"""Split on commas outside braces, brackets and quotes."""
	parts: list[str] = []
	buf: list[str] = []
	depth = 0
	quote: str | None = None
	escaped = False
	for ch in text:
		if quote is not None:
			buf.append(ch)
			if escaped:
				escaped = False
			elif ch == "\\" and quote == '"':
				escaped = True
			elif ch == quote:
				quote = None
			continue
		if ch in "\"'":
			quote = ch
		elif ch in "{[":
			depth += 1
		elif ch in "}]":
			depth -= 1
		elif ch == "," and depth == 0:
			parts.append("".join(buf).strip())
			buf = []
			continue
		buf.append(ch)
	tail = "".join(buf).strip()
	if tail:
		parts.append(tail)
	return [p for p in parts if p]


def _parse_inline(body: str, line_no: int) -> list[DependencySpec]:
	specs: list[DependencySpec] = []
	for piece in _split_top_level(body):
		if "=" not in piece:
			name = piece.strip()
			if not name:
				continue
			specs.append(DependencySpec(name=name, version="*"))
			continue
		try:
			doc = tomllib.loads(piece)
		except tomllib.TOMLDecodeError as err:
			logger.warning("line %d: ignoring malformed dependency %r (%s)", line_no, piece, err)
			continue
		for name, value in doc.items():
			specs.append(parse_toml_dependency(name, value))
	return specs


def _parse_block(lines: Iterable[str], first_line: int) -> list[DependencySpec]:
	text = "\n".join(lines)
	try:
		doc = tomllib.loads(text)
	except tomllib.TOMLDecodeError as err:
		logger.warning("line %d: ignoring malformed manifest block (%s)", first_line, err)
		return []
	table = doc.get("dependencies", {})
	if not isinstance(table, dict):
		raise ConfigError(message="manifest block: [dependencies] must be a table")
	return [parse_toml_dependency(name, value) for name, value in table.items()]


def _scan(source: str) -> tuple[list[DependencySpec], set[int]]:
	"""Return (specs in order of appearance, 0-based line indexes that declared them)."""
	specs: list[DependencySpec] = []
	consumed: set[int] = set()
	lines = source.splitlines()
	i = 0
	while i < len(lines):
		line = lines[i]
		m = _INLINE_RE.match(line)
		if m is not None:
			specs.extend(_parse_inline(m.group("body"), i + 1))
			consumed.add(i)
			i += 1
			continue
		stripped = line.strip()
		if stripped.startswith("//!") and _FENCE_OPEN_RE.match(stripped[3:].strip()):
			start = i
			body: list[str] = []
			i += 1
			closed = False
			while i < len(lines):
				inner = lines[i].strip()
				if not inner.startswith("//!"):
					break
				content = inner[3:].strip()
				if content.startswith("```"):
					closed = True
					i += 1
					break
				body.append(content)
				i += 1
			if not closed:
				logger.warning("line %d: manifest block is not closed with //! ```", start + 1)
			consumed.update(range(start, i))
			specs.extend(_parse_block(body, start + 1))
			continue
		i += 1
	return specs, consumed


def parse(source: str, *, strict: bool = False) -> list[DependencySpec]:
	"""
	Extract dependency declarations from `source`.

	Repeated names are merged (see `merge`), so at most one spec per name is
	returned, in order of first appearance. With `strict`, declarations that
	cannot be reconciled raise DependencyConflict instead of warning.
	"""
	specs, _ = _scan(source)
	if not specs:
		return []
	return merge(specs, [], strict=strict)


def strip_dependency_comments(source: str) -> str:
	"""
	Blank out dependency declaration lines.

	Lines are emptied rather than removed so line numbers reported by the
	toolchain still match the user's source.
	"""
	_, consumed = _scan(source)
	if not consumed:
		return source
	lines = source.splitlines(keepends=True)
	out: list[str] = []
	for idx, line in enumerate(lines):
		if idx in consumed:
			out.append("\n" if line.endswith(("\n", "\r")) else "")
		else:
			out.append(line)
	return "".join(out)


__all__ = ["parse", "parse_toml_dependency", "strip_dependency_comments"]
