# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Syntax tree for Rust declaration headers.

This is deliberately shallow: enough structure to classify parameter and
return types, recover generic parameters and their bounds, and locate names
for diagnostics. Function bodies are never represented.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from oxbind.core.span import Span


@dataclass(frozen=True)
class TypeExpr:
	"""
	A type as written.

	kind is one of: path, ref, ptr, slice, array, tuple, dyn, impl, fn, never,
	infer. For `path`, `segments` holds the path and `args` the generic
	arguments of the last segment. For ref/ptr/slice/array, `args` holds the
	single element type. For tuples, `args` holds the items.
	"""

	kind: str
	segments: tuple[str, ...] = ()
	args: tuple["TypeExpr", ...] = ()
	mutable: bool = False
	lifetime: Optional[str] = None
	# Generic arguments the shallow model cannot express (assoc bindings, consts).
	opaque_args: bool = False
	text: str = ""

	@property
	def name(self) -> str:
		return self.segments[-1] if self.segments else ""


@dataclass(frozen=True)
class Param:
	name: str
	type: TypeExpr
	span: Span = field(default_factory=Span)


@dataclass(frozen=True)
class SelfParam:
	"""Method receiver. kind: "ref", "mut_ref" or "value"."""

	kind: str
	span: Span = field(default_factory=Span)


@dataclass(frozen=True)
class GenericParamDecl:
	"""kind: "type", "lifetime" or "const"."""

	name: str
	kind: str
	bounds: tuple[str, ...] = ()
	default: Optional[TypeExpr] = None
	span: Span = field(default_factory=Span)


@dataclass(frozen=True)
class WherePredicate:
	target: str
	bounds: tuple[str, ...] = ()


@dataclass(frozen=True)
class FnHeader:
	name: str
	params: tuple[Param, ...] = ()
	self_param: Optional[SelfParam] = None
	ret: Optional[TypeExpr] = None
	generics: tuple[GenericParamDecl, ...] = ()
	where: tuple[WherePredicate, ...] = ()
	qualifiers: tuple[str, ...] = ()
	abi: Optional[str] = None
	is_pub: bool = False
	span: Span = field(default_factory=Span)

	@property
	def type_params(self) -> tuple[GenericParamDecl, ...]:
		return tuple(g for g in self.generics if g.kind == "type")


@dataclass(frozen=True)
class FieldDecl:
	name: str
	type: TypeExpr
	is_pub: bool = False
	span: Span = field(default_factory=Span)


@dataclass(frozen=True)
class StructDecl:
	"""shape: "named", "tuple" or "unit"."""

	name: str
	fields: tuple[FieldDecl, ...] = ()
	generics: tuple[GenericParamDecl, ...] = ()
	shape: str = "named"
	span: Span = field(default_factory=Span)


@dataclass(frozen=True)
class ImplHeader:
	target: TypeExpr
	trait: Optional[TypeExpr] = None
	generics: tuple[GenericParamDecl, ...] = ()
	span: Span = field(default_factory=Span)
