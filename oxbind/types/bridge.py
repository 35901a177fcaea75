# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Bidirectional mapping between Rust type descriptors and host types.

Two layers live here:

- `to_host` / `to_foreign`: a total mapping over the supported subset
  between `TypeDescriptor`s and `HostType`s (raising `UnsupportedType` for
  anything else).
- `TypeBridge`: the FFI-safety rules. It decides, per parameter, return value
  and struct field, how a value crosses the C boundary (`Marshal`), and
  rejects declarations that cannot cross safely before any build runs.
"""

from __future__ import annotations

import ctypes
from dataclasses import dataclass
from enum import Enum
from typing import AbstractSet, Any, Optional

from oxbind.core.errors import UnsupportedType
from oxbind.core.span import Span

from .descriptors import (
	UNIT,
	GenericParam,
	OpaqueStruct,
	OptionType,
	OwnedHandle,
	OwnedString,
	OwnershipKind,
	Pointer,
	Primitive,
	ResultType,
	Slice,
	TypeDescriptor,
	UnknownType,
)

_CTYPES: dict[str, Any] = {
	"i8": ctypes.c_int8,
	"i16": ctypes.c_int16,
	"i32": ctypes.c_int32,
	"i64": ctypes.c_int64,
	"isize": ctypes.c_ssize_t,
	"u8": ctypes.c_uint8,
	"u16": ctypes.c_uint16,
	"u32": ctypes.c_uint32,
	"u64": ctypes.c_uint64,
	"usize": ctypes.c_size_t,
	"f32": ctypes.c_float,
	"f64": ctypes.c_double,
	"bool": ctypes.c_bool,
	# Rust `char` crosses as its scalar value.
	"char": ctypes.c_uint32,
}

_HOST_NAMES = {
	"i8": ("int", "int8"),
	"i16": ("int", "int16"),
	"i32": ("int", "int32"),
	"i64": ("int", "int64"),
	"isize": ("int", "isize"),
	"u8": ("int", "uint8"),
	"u16": ("int", "uint16"),
	"u32": ("int", "uint32"),
	"u64": ("int", "uint64"),
	"usize": ("int", "usize"),
	"f32": ("float", "float32"),
	"f64": ("float", "float64"),
	"bool": ("bool", "bool"),
	"char": ("char", "char"),
	"()": ("none", "none"),
	"str": ("str", "strref"),
}
_FOREIGN_NAMES = {host: prim for prim, (_, host) in _HOST_NAMES.items()}

# ctypes aliases (c_int64 is c_long on LP64) make this many-to-one; fixed-width
# names are inserted last so they win.
_CTYPE_TO_PRIM: dict[Any, str] = {}
for _prim in ("isize", "usize", "char", "i8", "i16", "i32", "i64", "u8", "u16", "u32", "u64", "f32", "f64", "bool"):
	_CTYPE_TO_PRIM[_CTYPES[_prim]] = _prim

INT_RANGES: dict[str, tuple[int, int]] = {
	"i8": (-(2**7), 2**7 - 1),
	"i16": (-(2**15), 2**15 - 1),
	"i32": (-(2**31), 2**31 - 1),
	"i64": (-(2**63), 2**63 - 1),
	"isize": (-(2 ** (8 * ctypes.sizeof(ctypes.c_ssize_t) - 1)), 2 ** (8 * ctypes.sizeof(ctypes.c_ssize_t) - 1) - 1),
	"u8": (0, 2**8 - 1),
	"u16": (0, 2**16 - 1),
	"u32": (0, 2**32 - 1),
	"u64": (0, 2**64 - 1),
	"usize": (0, 2 ** (8 * ctypes.sizeof(ctypes.c_size_t)) - 1),
}


@dataclass(frozen=True)
class HostType:
	"""
	The host-side view of a foreign type.

	kind is one of: int, float, bool, char, none, str, pointer, sequence,
	result, option, handle, struct, generic. `ctype` is the ctypes type used
	at the boundary when the value crosses unchanged.
	"""

	kind: str
	name: str
	ctype: Any = None
	params: tuple["HostType", ...] = ()
	mutable: bool = False
	reference: bool = False
	ownership: Optional[OwnershipKind] = None

	def __str__(self) -> str:
		if not self.params:
			return self.name
		return f"{self.name}[{', '.join(str(p) for p in self.params)}]"


def ctype_of(desc: TypeDescriptor) -> Any:
	"""ctypes type for a descriptor that crosses the boundary unchanged."""
	if isinstance(desc, Primitive):
		if desc.name == "()":
			return None
		try:
			return _CTYPES[desc.name]
		except KeyError:
			raise UnsupportedType(message=f"`{desc.name}` has no C representation", type_text=desc.name) from None
	if isinstance(desc, (Pointer, OwnedHandle, OpaqueStruct)):
		return ctypes.c_void_p
	raise UnsupportedType(message=f"`{desc.rust()}` does not cross the boundary unchanged", type_text=desc.rust())


def _unsupported(desc: TypeDescriptor, message: str | None = None) -> UnsupportedType:
	return UnsupportedType(message=message or f"`{desc.rust()}` has no host representation", type_text=desc.rust())


def to_host(desc: TypeDescriptor, *, known_structs: AbstractSet[str] | None = None) -> HostType:
	"""
	Map a foreign type to its host type.

	`known_structs`, when given, restricts `OpaqueStruct` to bound structs.
	"""
	if isinstance(desc, Primitive):
		if desc.name not in _HOST_NAMES:
			raise _unsupported(desc, f"`{desc.name}` has no fixed-width host equivalent")
		kind, name = _HOST_NAMES[desc.name]
		ctype = _CTYPES.get(desc.name)
		if desc.name == "str":
			ctype = ctypes.c_char_p
		return HostType(kind=kind, name=name, ctype=ctype)
	if isinstance(desc, Pointer):
		try:
			pointee = to_host(desc.to, known_structs=known_structs)
		except UnsupportedType:
			if desc.reference:
				raise
			pointee = HostType(kind="opaque", name=desc.to.rust())
		return HostType(
			kind="pointer",
			name="ref" if desc.reference else "pointer",
			ctype=ctypes.c_void_p,
			params=(pointee,),
			mutable=desc.mutable,
			reference=desc.reference,
		)
	if isinstance(desc, OwnedString):
		return HostType(kind="str", name="String")
	if isinstance(desc, Slice):
		return HostType(kind="sequence", name="slice", params=(to_host(desc.elem, known_structs=known_structs),), mutable=desc.mutable)
	if isinstance(desc, ResultType):
		return HostType(
			kind="result",
			name="Result",
			params=(to_host(desc.ok, known_structs=known_structs), to_host(desc.err, known_structs=known_structs)),
		)
	if isinstance(desc, OptionType):
		return HostType(kind="option", name="Option", params=(to_host(desc.inner, known_structs=known_structs),))
	if isinstance(desc, OwnedHandle):
		return HostType(
			kind="handle",
			name=desc.kind.value,
			ctype=ctypes.c_void_p,
			params=(to_host(desc.inner, known_structs=known_structs),),
			ownership=desc.kind,
		)
	if isinstance(desc, OpaqueStruct):
		if known_structs is not None and desc.name not in known_structs:
			raise _unsupported(desc, f"`{desc.name}` is not a bound struct")
		return HostType(kind="struct", name=desc.name, ctype=ctypes.c_void_p)
	if isinstance(desc, GenericParam):
		return HostType(kind="generic", name=desc.name)
	if isinstance(desc, UnknownType):
		raise _unsupported(desc)
	raise _unsupported(desc)


def to_foreign(host: Any) -> TypeDescriptor:
	"""
	Map a host type back to a foreign descriptor.

	Accepts a `HostType`, a Python class (`int` -> i64, `float` -> f64, `bool`,
	`str` -> String) or a ctypes scalar class.
	"""
	if isinstance(host, HostType):
		return _host_type_to_foreign(host)
	if host is bool:
		return Primitive("bool")
	if host is int:
		return Primitive("i64")
	if host is float:
		return Primitive("f64")
	if host is str:
		return OwnedString()
	if host is None or host is type(None):
		return UNIT
	prim = _CTYPE_TO_PRIM.get(host)
	if prim is not None:
		return Primitive(prim)
	if isinstance(host, type) and hasattr(host, "__oxbind_descriptor__"):
		return host.__oxbind_descriptor__
	raise UnsupportedType(message=f"no foreign type for host type {host!r}", type_text=repr(host))


def _host_type_to_foreign(host: HostType) -> TypeDescriptor:
	if host.kind in ("int", "float", "bool", "char", "none") or (host.kind == "str" and host.name == "strref"):
		prim = _FOREIGN_NAMES.get(host.name)
		if prim is None:
			raise UnsupportedType(message=f"unknown host scalar {host.name!r}", type_text=host.name)
		return Primitive(prim)
	if host.kind == "str":
		return OwnedString()
	if host.kind == "pointer":
		(pointee,) = host.params
		to = UnknownType(pointee.name) if pointee.kind == "opaque" else _host_type_to_foreign(pointee)
		return Pointer(to, mutable=host.mutable, reference=host.reference)
	if host.kind == "sequence":
		return Slice(_host_type_to_foreign(host.params[0]), mutable=host.mutable)
	if host.kind == "result":
		return ResultType(_host_type_to_foreign(host.params[0]), _host_type_to_foreign(host.params[1]))
	if host.kind == "option":
		return OptionType(_host_type_to_foreign(host.params[0]))
	if host.kind == "handle" and host.ownership is not None:
		return OwnedHandle(host.ownership, _host_type_to_foreign(host.params[0]))
	if host.kind == "struct":
		return OpaqueStruct(host.name)
	if host.kind == "generic":
		return GenericParam(host.name)
	raise UnsupportedType(message=f"no foreign type for host type {host}", type_text=str(host))


def descriptor_of_value(value: Any) -> TypeDescriptor:
	"""
	Infer the foreign type a host argument stands for.

	Used to pick generic specializations: Python ints are i64, floats f64,
	strings String; ctypes scalars keep their width; bound objects report
	their own descriptor.
	"""
	if isinstance(value, bool):
		return Primitive("bool")
	if isinstance(value, int):
		return Primitive("i64")
	if isinstance(value, float):
		return Primitive("f64")
	if isinstance(value, str):
		return OwnedString()
	desc = getattr(value, "__oxbind_descriptor__", None)
	if isinstance(desc, TypeDescriptor):
		return desc
	prim = _CTYPE_TO_PRIM.get(type(value))
	if prim is not None:
		return Primitive(prim)
	raise UnsupportedType(message=f"cannot infer a foreign type for {type(value).__name__} value", type_text=type(value).__name__)


class Marshal(Enum):
	"""How one value crosses the C boundary."""

	DIRECT = "direct"
	CHAR = "char"
	UNIT = "unit"
	STR = "str"
	SLICE = "slice"
	SCALAR_REF = "scalar_ref"
	STRUCT_REF = "struct_ref"
	STRUCT_VALUE = "struct_value"
	HANDLE = "handle"
	RESULT = "result"
	OPTION = "option"


_SLICE_ELEMS = frozenset(("i8", "i16", "i32", "i64", "isize", "u8", "u16", "u32", "u64", "usize", "f32", "f64", "bool"))
_PAYLOADS = frozenset((Marshal.DIRECT, Marshal.CHAR, Marshal.UNIT, Marshal.STR, Marshal.STRUCT_VALUE, Marshal.HANDLE))


class TypeBridge:
	"""
	FFI-safety rules for one binding unit.

	`known_structs` are the struct names bound in the unit; by-value and
	by-reference struct types must name one of them.
	"""

	def __init__(self, known_structs: AbstractSet[str] = frozenset()) -> None:
		self.known_structs = frozenset(known_structs)

	def _fail(self, desc: TypeDescriptor, message: str, *, item: str | None, at: str | None, span: Span | None, hint: str | None = None) -> UnsupportedType:
		return UnsupportedType(message=message, type_text=desc.rust(), item=item, field=at, span=span, hint=hint)

	def _direct_primitive(self, desc: TypeDescriptor) -> bool:
		return isinstance(desc, Primitive) and desc.name in _CTYPES

	def _handle_inner_ok(self, inner: TypeDescriptor) -> bool:
		if isinstance(inner, Primitive):
			return inner.name in _SLICE_ELEMS
		return isinstance(inner, OpaqueStruct) and inner.name in self.known_structs

	def param(self, desc: TypeDescriptor, *, item: str | None = None, at: str | None = None, span: Span | None = None) -> Marshal:
		"""Strategy for passing a host argument as `desc`."""
		if isinstance(desc, Primitive):
			if desc.name == "char":
				return Marshal.CHAR
			if desc.name in _CTYPES:
				return Marshal.DIRECT
			raise self._fail(desc, f"`{desc.name}` cannot be passed across the boundary", item=item, at=at, span=span)
		if isinstance(desc, Pointer):
			if not desc.reference:
				return Marshal.DIRECT
			if desc.to in (Primitive("str"), OwnedString()) and not desc.mutable:
				return Marshal.STR
			if isinstance(desc.to, Primitive) and desc.to.name in _SLICE_ELEMS:
				return Marshal.SCALAR_REF
			if isinstance(desc.to, OpaqueStruct) and desc.to.name in self.known_structs:
				return Marshal.STRUCT_REF
			raise self._fail(
				desc,
				f"references to `{desc.to.rust()}` cannot be passed across the boundary",
				item=item,
				at=at,
				span=span,
				hint="take the value by copy, or bind the pointee as a struct",
			)
		if isinstance(desc, OwnedString):
			return Marshal.STR
		if isinstance(desc, Slice):
			if isinstance(desc.elem, Primitive) and desc.elem.name in _SLICE_ELEMS:
				return Marshal.SLICE
			raise self._fail(desc, f"slices of `{desc.elem.rust()}` are not supported", item=item, at=at, span=span, hint="use a slice of fixed-width numbers or bool")
		if isinstance(desc, OpaqueStruct):
			if desc.name in self.known_structs:
				return Marshal.STRUCT_VALUE
			raise self._fail(desc, f"`{desc.name}` is not a bound struct", item=item, at=at, span=span, hint=f"mark `struct {desc.name}` for binding")
		if isinstance(desc, OwnedHandle):
			if self._handle_inner_ok(desc.inner):
				return Marshal.HANDLE
			raise self._fail(desc, f"`{desc.rust()}` does not wrap a number, bool or bound struct", item=item, at=at, span=span)
		if isinstance(desc, GenericParam):
			raise self._fail(desc, f"generic parameter `{desc.name}` is unresolved", item=item, at=at, span=span)
		if isinstance(desc, (ResultType, OptionType)):
			raise self._fail(desc, f"`{desc.rust()}` is only supported as a return type", item=item, at=at, span=span)
		raise self._fail(desc, f"`{desc.rust()}` has no FFI-safe representation", item=item, at=at, span=span)

	def ret(self, desc: TypeDescriptor, *, item: str | None = None, span: Span | None = None) -> Marshal:
		"""Strategy for returning `desc` to the host."""
		if desc == UNIT:
			return Marshal.UNIT
		if isinstance(desc, Primitive):
			if desc.name == "char":
				return Marshal.CHAR
			if desc.name in _CTYPES:
				return Marshal.DIRECT
			raise self._fail(desc, f"`{desc.name}` cannot be returned across the boundary", item=item, at="return", span=span)
		if isinstance(desc, Pointer):
			if not desc.reference:
				return Marshal.DIRECT
			if desc.to == Primitive("str") and not desc.mutable:
				return Marshal.STR
			raise self._fail(
				desc,
				"returning a borrowed reference is not supported",
				item=item,
				at="return",
				span=span,
				hint="return an owned value (String, a struct, Box<T>)",
			)
		if isinstance(desc, OwnedString):
			return Marshal.STR
		if isinstance(desc, OpaqueStruct):
			if desc.name in self.known_structs:
				return Marshal.STRUCT_VALUE
			raise self._fail(desc, f"`{desc.name}` is not a bound struct", item=item, at="return", span=span, hint=f"mark `struct {desc.name}` for binding")
		if isinstance(desc, OwnedHandle):
			if self._handle_inner_ok(desc.inner):
				return Marshal.HANDLE
			raise self._fail(desc, f"`{desc.rust()}` does not wrap a number, bool or bound struct", item=item, at="return", span=span)
		if isinstance(desc, ResultType):
			self.payload(desc.ok, item=item, at="Ok value", span=span)
			err = self.payload(desc.err, item=item, at="Err value", span=span)
			if err in (Marshal.STRUCT_VALUE, Marshal.HANDLE):
				raise self._fail(desc.err, "error payloads must be numbers, bool, char or strings", item=item, at="Err value", span=span)
			return Marshal.RESULT
		if isinstance(desc, OptionType):
			inner = self.payload(desc.inner, item=item, at="Some value", span=span)
			if inner is Marshal.UNIT:
				raise self._fail(desc, "`Option<()>` carries no value; return bool instead", item=item, at="return", span=span)
			return Marshal.OPTION
		if isinstance(desc, Slice):
			raise self._fail(desc, "returning a borrowed slice is not supported", item=item, at="return", span=span, hint="return a Box<T> or a struct that owns the data")
		if isinstance(desc, GenericParam):
			raise self._fail(desc, f"generic parameter `{desc.name}` is unresolved", item=item, at="return", span=span)
		raise self._fail(desc, f"`{desc.rust()}` has no FFI-safe representation", item=item, at="return", span=span)

	def payload(self, desc: TypeDescriptor, *, item: str | None = None, at: str | None = None, span: Span | None = None) -> Marshal:
		"""Strategy for the value carried inside a Result/Option."""
		if isinstance(desc, (ResultType, OptionType)):
			raise self._fail(desc, "nested Result/Option values are not supported", item=item, at=at, span=span)
		m = self.ret(desc, item=item, span=span)
		if m not in _PAYLOADS:
			raise self._fail(desc, f"`{desc.rust()}` cannot be carried in a Result/Option", item=item, at=at, span=span)
		return m

	def field(self, desc: TypeDescriptor, *, item: str | None = None, at: str | None = None, span: Span | None = None) -> Marshal:
		"""Strategy for a struct field accessor."""
		if isinstance(desc, Primitive):
			if desc.name == "char":
				return Marshal.CHAR
			if desc.name in _CTYPES:
				return Marshal.DIRECT
		elif isinstance(desc, Pointer) and not desc.reference:
			return Marshal.DIRECT
		elif isinstance(desc, OwnedString):
			return Marshal.STR
		raise self._fail(
			desc,
			f"field type `{desc.rust()}` has no FFI-safe accessor",
			item=item,
			at=at,
			span=span,
			hint="use numbers, bool, char, String or raw pointers for bound fields",
		)


__all__ = [
	"HostType",
	"INT_RANGES",
	"Marshal",
	"TypeBridge",
	"ctype_of",
	"descriptor_of_value",
	"to_foreign",
	"to_host",
]
