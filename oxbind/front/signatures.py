# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Structured signatures produced by the extractor.

All records are immutable; the extractor builds them once and every later
pass (bridge checks, glue generation, host wrappers) only reads them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from oxbind.core.diagnostics import Diagnostic
from oxbind.core.span import Span
from oxbind.types.descriptors import UNIT, OpaqueStruct, OwnedHandle, Pointer, Primitive, TypeDescriptor


class ReceiverKind(Enum):
	"""How a callable receives its owner: free functions use NONE."""

	NONE = "none"
	REF = "by-ref"
	MUT_REF = "by-mut-ref"
	VALUE = "by-value"
	STATIC = "static"


@dataclass(frozen=True)
class ParamSpec:
	name: str
	type: TypeDescriptor
	# True when the value crosses the C boundary unchanged (scalars, raw pointers).
	ffi_safe: bool
	text: str = ""
	span: Span = field(default_factory=Span)


@dataclass(frozen=True)
class GenericParamSpec:
	"""A type parameter and the constraint texts written for it (inline and `where`)."""

	name: str
	constraints: tuple[str, ...] = ()


def is_ffi_safe(desc: TypeDescriptor) -> bool:
	if isinstance(desc, Primitive):
		return desc.name not in ("str", "()", "i128", "u128")
	return isinstance(desc, Pointer) and not desc.reference


@dataclass(frozen=True)
class Signature:
	"""
	One bindable callable: a free function or a method.

	`owner` is the struct a method belongs to; `capabilities` are the owner's
	derived capabilities. `item_range` is the (start, end) offset of the whole
	item in the source, used to re-emit generic definitions.
	"""

	name: str
	params: tuple[ParamSpec, ...]
	ret: TypeDescriptor = UNIT
	receiver: ReceiverKind = ReceiverKind.NONE
	generics: tuple[GenericParamSpec, ...] = ()
	capabilities: frozenset[str] = frozenset()
	owner: Optional[str] = None
	ret_text: str = ""
	# Already `#[no_mangle] extern "C"`: bound by its own symbol, no shim.
	exported: bool = False
	is_unsafe: bool = False
	is_pub: bool = False
	span: Span = field(default_factory=Span)
	item_range: Optional[tuple[int, int]] = None

	@property
	def symbol(self) -> str:
		"""Exported C symbol name of the callable."""
		if self.owner is None:
			return self.name
		return f"{self.owner}_{self.name}"

	@property
	def qualified_name(self) -> str:
		return self.name if self.owner is None else f"{self.owner}::{self.name}"

	@property
	def is_generic(self) -> bool:
		return bool(self.generics)

	@property
	def is_method(self) -> bool:
		return self.receiver in (ReceiverKind.REF, ReceiverKind.MUT_REF, ReceiverKind.VALUE)

	@property
	def is_constructor(self) -> bool:
		"""Static method returning the owner (directly or boxed)."""
		if self.receiver is not ReceiverKind.STATIC or self.owner is None:
			return False
		ret = self.ret
		if isinstance(ret, OwnedHandle):
			ret = ret.inner
		return ret == OpaqueStruct(self.owner)

	@property
	def type_param_names(self) -> tuple[str, ...]:
		return tuple(g.name for g in self.generics)


@dataclass(frozen=True)
class FieldSpec:
	name: str
	type: TypeDescriptor
	text: str = ""
	is_pub: bool = False
	span: Span = field(default_factory=Span)

	@property
	def ffi_safe(self) -> bool:
		return is_ffi_safe(self.type)


@dataclass(frozen=True)
class StructDescriptor:
	"""A bound struct: fields, derived capabilities and methods."""

	name: str
	fields: tuple[FieldSpec, ...] = ()
	capabilities: frozenset[str] = frozenset()
	methods: tuple[Signature, ...] = ()
	shape: str = "named"
	generics: tuple[GenericParamSpec, ...] = ()
	span: Span = field(default_factory=Span)

	def method(self, name: str) -> Optional[Signature]:
		for m in self.methods:
			if m.name == name:
				return m
		return None

	@property
	def constructors(self) -> tuple[Signature, ...]:
		return tuple(m for m in self.methods if m.is_constructor)


@dataclass(frozen=True)
class Extraction:
	"""Everything extracted from one source text."""

	functions: tuple[Signature, ...] = ()
	structs: tuple[StructDescriptor, ...] = ()
	diagnostics: tuple[Diagnostic, ...] = ()
	# Character ranges of every marker attribute, blanked before the source is compiled.
	marker_ranges: tuple[tuple[int, int], ...] = ()

	def struct(self, name: str) -> Optional[StructDescriptor]:
		for s in self.structs:
			if s.name == name:
				return s
		return None

	def function(self, name: str) -> Optional[Signature]:
		for f in self.functions:
			if f.name == name:
				return f
		return None

	def __iter__(self):
		# Unpacks as the (functions, structs) pair.
		yield self.functions
		yield self.structs


__all__ = [
	"Extraction",
	"FieldSpec",
	"GenericParamSpec",
	"ParamSpec",
	"ReceiverKind",
	"Signature",
	"StructDescriptor",
	"is_ffi_safe",
]
