# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Error taxonomy for the binding compiler.

Every error is a structured, serializable exception with a stable reason
code. Per-declaration problems (unsupported types, malformed markers) are
collected and reported without blocking other declarations; build and runtime
failures propagate to the caller.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from .span import Span


@dataclass(eq=False)
class OxbindError(Exception):
	"""Base class for all oxbind errors."""

	message: str
	reason_code: str = "E-OXBIND"
	hint: str | None = None
	notes: list[str] = field(default_factory=list)

	def __post_init__(self) -> None:
		Exception.__init__(self, self.message)

	def __str__(self) -> str:
		return self.format_human()

	def to_dict(self) -> dict[str, Any]:
		return {
			"reason_code": self.reason_code,
			"message": self.message,
			"hint": self.hint,
			"notes": list(self.notes),
		}

	def format_human(self) -> str:
		parts: list[str] = [f"[{self.reason_code}] {self.message}"]
		if self.hint:
			parts.append(f"hint: {self.hint}")
		parts.extend(f"note: {n}" for n in self.notes)
		return "\n".join(parts)


@dataclass(eq=False)
class ConfigError(OxbindError):
	"""Invalid compiler configuration."""

	reason_code: str = "E-CONFIG"
	key: str | None = None


@dataclass(eq=False)
class UnsupportedType(OxbindError):
	"""
	A type has no FFI-safe representation.

	Raised by the type bridge before any compile attempt. `item` names the
	declaration, `field` the offending struct field or parameter when known.
	"""

	reason_code: str = "E-UNSUPPORTED-TYPE"
	type_text: str | None = None
	item: str | None = None
	field: str | None = None
	span: Span | None = None

	def to_dict(self) -> dict[str, Any]:
		d = super().to_dict()
		d.update({"type": self.type_text, "item": self.item, "field": self.field})
		return d

	def format_human(self) -> str:
		where: list[str] = []
		if self.item:
			where.append(f"in `{self.item}`")
		if self.field:
			where.append(f"at `{self.field}`")
		head = f"[{self.reason_code}] {self.message}"
		if where:
			head += " (" + " ".join(where) + ")"
		if self.span is not None and self.span.line is not None:
			head = f"{self.span}: {head}"
		rest = [f"hint: {self.hint}"] if self.hint else []
		rest.extend(f"note: {n}" for n in self.notes)
		return "\n".join([head, *rest])


@dataclass(eq=False)
class DependencyConflict(OxbindError):
	"""Two dependency declarations for the same crate could not be reconciled."""

	reason_code: str = "E-DEP-CONFLICT"
	name: str | None = None
	choices: list[str] = field(default_factory=list)

	def to_dict(self) -> dict[str, Any]:
		d = super().to_dict()
		d.update({"name": self.name, "choices": list(self.choices)})
		return d


@dataclass(frozen=True)
class SourceRef:
	"""File/line/column reference extracted from toolchain output."""

	file: str
	line: int
	column: int | None = None
	# Line in the user's source once the generated prelude is accounted for.
	user_line: int | None = None

	def __str__(self) -> str:
		col = f":{self.column}" if self.column is not None else ""
		return f"{self.file}:{self.line}{col}"


@dataclass(eq=False)
class BuildFailure(OxbindError):
	"""The foreign toolchain exited non-zero (or could not be started)."""

	reason_code: str = "E-BUILD"
	raw_output: str = ""
	exit_code: int | None = None
	refs: list[SourceRef] = field(default_factory=list)
	suggestions: list[str] = field(default_factory=list)
	project_dir: str | None = None

	@property
	def line_numbers(self) -> list[int]:
		"""User-source line numbers named by the toolchain, in report order."""
		out: list[int] = []
		for ref in self.refs:
			ln = ref.user_line if ref.user_line is not None else ref.line
			if ln not in out:
				out.append(ln)
		return out

	def to_dict(self) -> dict[str, Any]:
		d = super().to_dict()
		d.update(
			{
				"exit_code": self.exit_code,
				"refs": [str(r) for r in self.refs],
				"line_numbers": self.line_numbers,
				"suggestions": list(self.suggestions),
				"project_dir": self.project_dir,
			}
		)
		return d

	def format_human(self) -> str:
		parts = [super().format_human()]
		if self.line_numbers:
			parts.append("lines: " + ", ".join(str(n) for n in self.line_numbers))
		parts.extend(f"suggestion: {s}" for s in self.suggestions)
		if self.raw_output:
			parts.append(self.raw_output.rstrip())
		return "\n".join(parts)


@dataclass(eq=False)
class CacheIntegrityMismatch(OxbindError):
	"""
	A cache entry failed validation.

	Only ever raised and handled inside the cache: callers observe a miss.
	"""

	reason_code: str = "E-CACHE-INTEGRITY"
	key: str | None = None
	sha256_expected: str | None = None
	sha256_got: str | None = None


@dataclass(eq=False)
class UseAfterDrop(OxbindError):
	"""An operation touched an ownership handle after it was dropped."""

	reason_code: str = "E-USE-AFTER-DROP"
	type_name: str | None = None
	operation: str | None = None


@dataclass(eq=False)
class ForeignError(OxbindError):
	"""`unwrap()` was called on an `Err` result or a `None` option."""

	reason_code: str = "E-FOREIGN-ERR"
	value: Any = None


class DiagnosticParseWarning(UserWarning):
	"""A binding marker was malformed; the declaration was skipped."""


class DependencyConflictWarning(UserWarning):
	"""A dependency divergence was resolved by picking one side."""


__all__ = [
	"BuildFailure",
	"CacheIntegrityMismatch",
	"ConfigError",
	"DependencyConflict",
	"DependencyConflictWarning",
	"DiagnosticParseWarning",
	"ForeignError",
	"OxbindError",
	"SourceRef",
	"UnsupportedType",
	"UseAfterDrop",
]
