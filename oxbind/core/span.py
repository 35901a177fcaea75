# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Source span representation used by diagnostics and build errors.

Lines and columns are 1-based, matching what lark tokens and rustc report.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional


@dataclass(frozen=True)
class Span:
	"""Represents a source span (best-effort file/line/column)."""

	file: Optional[str] = None
	line: Optional[int] = None
	column: Optional[int] = None
	end_line: Optional[int] = None
	end_column: Optional[int] = None

	@classmethod
	def from_loc(cls, loc: Any, *, file: str | None = None) -> "Span":
		"""
		Construct a Span from a lark token, tree meta or another Span.

		Missing attributes are left as None rather than guessed.
		"""
		if loc is None:
			return cls(file=file)
		if isinstance(loc, cls):
			return loc
		return cls(
			file=file or getattr(loc, "file", None),
			line=getattr(loc, "line", None),
			column=getattr(loc, "column", None),
			end_line=getattr(loc, "end_line", None),
			end_column=getattr(loc, "end_column", None),
		)

	def shifted(self, lines: int) -> "Span":
		"""Return a copy moved by `lines` (used to map unit lines back to user lines)."""
		if self.line is None:
			return self
		return Span(
			file=self.file,
			line=self.line + lines,
			column=self.column,
			end_line=self.end_line + lines if self.end_line is not None else None,
			end_column=self.end_column,
		)

	def __str__(self) -> str:
		where = self.file or "<source>"
		if self.line is None:
			return where
		if self.column is None:
			return f"{where}:{self.line}"
		return f"{where}:{self.line}:{self.column}"


__all__ = ["Span"]
