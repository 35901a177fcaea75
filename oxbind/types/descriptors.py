# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Foreign type descriptors.

A TypeDescriptor is the bridge's view of a Rust type: a small tagged variant
built structurally from the parsed `TypeExpr`. Building one never fails;
types the bridge cannot carry become `UnknownType` and are rejected when a
binding is generated.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import AbstractSet, Optional

from oxbind.parser.ast import TypeExpr

INT_PRIMITIVES = ("i8", "i16", "i32", "i64", "i128", "isize", "u8", "u16", "u32", "u64", "u128", "usize")
FLOAT_PRIMITIVES = ("f32", "f64")
PRIMITIVES = frozenset(INT_PRIMITIVES + FLOAT_PRIMITIVES + ("bool", "char", "str", "()"))


class OwnershipKind(Enum):
	"""How a foreign-owned value is shared."""

	UNIQUE = "unique"
	SHARED_LOCAL = "shared-single-thread"
	SHARED_ATOMIC = "shared-atomic"

	@property
	def is_shared(self) -> bool:
		return self is not OwnershipKind.UNIQUE


_HANDLE_WRAPPERS = {
	"Box": OwnershipKind.UNIQUE,
	"Rc": OwnershipKind.SHARED_LOCAL,
	"Arc": OwnershipKind.SHARED_ATOMIC,
}
_HANDLE_PATHS = {
	OwnershipKind.UNIQUE: "Box",
	OwnershipKind.SHARED_LOCAL: "std::rc::Rc",
	OwnershipKind.SHARED_ATOMIC: "std::sync::Arc",
}
_HANDLE_TAGS = {
	OwnershipKind.UNIQUE: "box",
	OwnershipKind.SHARED_LOCAL: "rc",
	OwnershipKind.SHARED_ATOMIC: "arc",
}


class TypeDescriptor:
	"""Base of the descriptor variants."""

	__slots__ = ()

	def rust(self) -> str:
		"""Rust spelling, usable in generated code."""
		raise NotImplementedError

	def tag(self) -> str:
		"""Identifier-safe tag, used to name specializations and helpers."""
		raise NotImplementedError

	def __str__(self) -> str:
		return self.rust()


@dataclass(frozen=True)
class Primitive(TypeDescriptor):
	name: str

	def rust(self) -> str:
		return self.name

	def tag(self) -> str:
		return "unit" if self.name == "()" else self.name

	@property
	def is_int(self) -> bool:
		return self.name in INT_PRIMITIVES

	@property
	def is_float(self) -> bool:
		return self.name in FLOAT_PRIMITIVES


UNIT = Primitive("()")


@dataclass(frozen=True)
class Pointer(TypeDescriptor):
	"""Raw pointer (`reference=False`) or reference (`reference=True`)."""

	to: TypeDescriptor
	mutable: bool = False
	reference: bool = False

	def rust(self) -> str:
		if self.reference:
			return f"&mut {self.to.rust()}" if self.mutable else f"&{self.to.rust()}"
		return f"*mut {self.to.rust()}" if self.mutable else f"*const {self.to.rust()}"

	def tag(self) -> str:
		prefix = ("refmut" if self.mutable else "ref") if self.reference else ("mutptr" if self.mutable else "ptr")
		return f"{prefix}_{self.to.tag()}"


@dataclass(frozen=True)
class OwnedString(TypeDescriptor):
	def rust(self) -> str:
		return "String"

	def tag(self) -> str:
		return "String"


@dataclass(frozen=True)
class Slice(TypeDescriptor):
	"""A borrowed slice `&[T]` / `&mut [T]`."""

	elem: TypeDescriptor
	mutable: bool = False

	def rust(self) -> str:
		return f"&mut [{self.elem.rust()}]" if self.mutable else f"&[{self.elem.rust()}]"

	def tag(self) -> str:
		return f"{'mutslice' if self.mutable else 'slice'}_{self.elem.tag()}"


@dataclass(frozen=True)
class ResultType(TypeDescriptor):
	ok: TypeDescriptor
	err: TypeDescriptor

	def rust(self) -> str:
		return f"Result<{self.ok.rust()}, {self.err.rust()}>"

	def tag(self) -> str:
		return f"Result_{self.ok.tag()}_{self.err.tag()}"


@dataclass(frozen=True)
class OptionType(TypeDescriptor):
	inner: TypeDescriptor

	def rust(self) -> str:
		return f"Option<{self.inner.rust()}>"

	def tag(self) -> str:
		return f"Option_{self.inner.tag()}"


@dataclass(frozen=True)
class OwnedHandle(TypeDescriptor):
	"""`Box<T>`, `Rc<T>` or `Arc<T>`."""

	kind: OwnershipKind
	inner: TypeDescriptor

	def rust(self) -> str:
		return f"{_HANDLE_PATHS[self.kind]}<{self.inner.rust()}>"

	def tag(self) -> str:
		return f"{_HANDLE_TAGS[self.kind]}_{self.inner.tag()}"

	@property
	def helper_prefix(self) -> str:
		return _HANDLE_TAGS[self.kind]


@dataclass(frozen=True)
class OpaqueStruct(TypeDescriptor):
	name: str

	def rust(self) -> str:
		return self.name

	def tag(self) -> str:
		return self.name


@dataclass(frozen=True)
class GenericParam(TypeDescriptor):
	name: str

	def rust(self) -> str:
		return self.name

	def tag(self) -> str:
		return self.name


@dataclass(frozen=True)
class UnknownType(TypeDescriptor):
	"""Syntax the bridge cannot carry (tuples, arrays, trait objects, ...)."""

	text: str

	def rust(self) -> str:
		return self.text

	def tag(self) -> str:
		return "".join(ch if ch.isalnum() else "_" for ch in self.text).strip("_") or "unknown"


def from_type_expr(
	ty: Optional[TypeExpr],
	*,
	generics: AbstractSet[str] = frozenset(),
	self_name: str | None = None,
) -> TypeDescriptor:
	"""
	Classify a parsed type.

	`generics` names the type parameters in scope; `self_name` resolves
	`Self` inside impl blocks.
	"""
	if ty is None:
		return UNIT
	if ty.kind == "ref":
		inner = ty.args[0]
		if inner.kind == "slice":
			return Slice(from_type_expr(inner.args[0], generics=generics, self_name=self_name), mutable=ty.mutable)
		return Pointer(from_type_expr(inner, generics=generics, self_name=self_name), mutable=ty.mutable, reference=True)
	if ty.kind == "ptr":
		return Pointer(from_type_expr(ty.args[0], generics=generics, self_name=self_name), mutable=ty.mutable)
	if ty.kind == "tuple" and not ty.args:
		return UNIT
	if ty.kind != "path" or ty.opaque_args:
		return UnknownType(ty.text)

	name = ty.name
	args = [from_type_expr(a, generics=generics, self_name=self_name) for a in ty.args]
	single = len(ty.segments) == 1 or (len(ty.segments) == 2 and ty.segments[0] in ("crate", "self"))
	if not args:
		if name in PRIMITIVES and len(ty.segments) == 1:
			return Primitive(name)
		if name == "String":
			return OwnedString()
		if name == "Self" and self_name is not None and len(ty.segments) == 1:
			return OpaqueStruct(self_name)
		if name in generics and len(ty.segments) == 1:
			return GenericParam(name)
		if single:
			return OpaqueStruct(name)
		return UnknownType(ty.text)
	if name == "Result" and len(args) == 2:
		return ResultType(args[0], args[1])
	if name == "Option" and len(args) == 1:
		return OptionType(args[0])
	if name in _HANDLE_WRAPPERS and len(args) == 1:
		return OwnedHandle(_HANDLE_WRAPPERS[name], args[0])
	return UnknownType(ty.text)


def substitute(desc: TypeDescriptor, mapping: dict[str, TypeDescriptor]) -> TypeDescriptor:
	"""Replace generic parameters in `desc` according to `mapping`."""
	if isinstance(desc, GenericParam):
		return mapping.get(desc.name, desc)
	if isinstance(desc, Pointer):
		return Pointer(substitute(desc.to, mapping), desc.mutable, desc.reference)
	if isinstance(desc, Slice):
		return Slice(substitute(desc.elem, mapping), desc.mutable)
	if isinstance(desc, ResultType):
		return ResultType(substitute(desc.ok, mapping), substitute(desc.err, mapping))
	if isinstance(desc, OptionType):
		return OptionType(substitute(desc.inner, mapping))
	if isinstance(desc, OwnedHandle):
		return OwnedHandle(desc.kind, substitute(desc.inner, mapping))
	return desc


def mentions(desc: TypeDescriptor, name: str) -> bool:
	"""True when generic parameter `name` occurs anywhere in `desc`."""
	if isinstance(desc, GenericParam):
		return desc.name == name
	if isinstance(desc, Pointer):
		return mentions(desc.to, name)
	if isinstance(desc, Slice):
		return mentions(desc.elem, name)
	if isinstance(desc, ResultType):
		return mentions(desc.ok, name) or mentions(desc.err, name)
	if isinstance(desc, OptionType):
		return mentions(desc.inner, name)
	if isinstance(desc, OwnedHandle):
		return mentions(desc.inner, name)
	return False


__all__ = [
	"FLOAT_PRIMITIVES",
	"GenericParam",
	"INT_PRIMITIVES",
	"OpaqueStruct",
	"OptionType",
	"OwnedHandle",
	"OwnedString",
	"OwnershipKind",
	"PRIMITIVES",
	"Pointer",
	"Primitive",
	"ResultType",
	"Slice",
	"TypeDescriptor",
	"UNIT",
	"UnknownType",
	"from_type_expr",
	"mentions",
	"substitute",
]
