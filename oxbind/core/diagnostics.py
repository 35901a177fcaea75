# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Common diagnostic structure for extraction and binding passes.

A diagnostic is a message plus optional span/metadata. Extraction collects
them per declaration so a single malformed item never blocks the rest.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from .span import Span


@dataclass
class Diagnostic:
	"""Represents a compiler diagnostic (error/warning/etc.)."""

	message: str
	code: str | None = None
	# Pass that produced the diagnostic ("extract", "bridge", "build").
	phase: str | None = None
	severity: str = "error"
	span: Span = field(default_factory=Span)  # Span() denotes unknown.
	notes: list[str] = field(default_factory=list)
	# Declaration the diagnostic is attached to, when known.
	item: str | None = None

	def __post_init__(self) -> None:
		if self.span is None:  # type: ignore[unreachable]
			self.span = Span()

	def format_human(self) -> str:
		head = f"{self.span}: {self.severity}"
		if self.code:
			head += f"[{self.code}]"
		lines = [f"{head}: {self.message}"]
		lines.extend(f"  note: {n}" for n in self.notes)
		return "\n".join(lines)


__all__ = ["Diagnostic"]
