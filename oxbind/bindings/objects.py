# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Host objects for foreign-owned values.

Every bound struct becomes a subclass of `ForeignStruct` whose instances own
one Rust allocation through an `OwnershipHandle`. `Box<T>`, `Rc<T>` and
`Arc<T>` of a number or bool become `OwnedValue`s. `Runtime` ties a loaded
library to the ownership manager and knows how to wrap raw pointers into
these objects.
"""

from __future__ import annotations

import ctypes
from typing import Any, Callable, ClassVar, Optional

from oxbind.codegen.plan import BindingPlan, StructPlan, handle_plan
from oxbind.core.logging import get_logger
from oxbind.ownership import HandleOps, OwnershipHandle, OwnershipManager
from oxbind.types.bridge import ctype_of
from oxbind.types.descriptors import OpaqueStruct, OwnedHandle, OwnershipKind, TypeDescriptor
from oxbind.types.values import OxbindString

from .loader import Library

logger = get_logger("bindings")


class Runtime:
	"""Per-library state shared by every bound function and object."""

	def __init__(self, library: Library, manager: OwnershipManager, plan: BindingPlan) -> None:
		self.library = library
		self.manager = manager
		self.plan = plan
		# Struct name -> host class; filled in when the module is assembled.
		self.structs: dict[str, type["ForeignStruct"]] = {}
		self._string_free = library.function("__oxbind_string_free", [OxbindString], None)
		self._struct_ops: dict[str, HandleOps] = {}
		self._handle_ops: dict[OwnedHandle, HandleOps] = {}
		self._getters: dict[OwnedHandle, Callable[[int], Any]] = {}

	def fn(self, symbol: str, argtypes: list[Any], restype: Any) -> Callable[..., Any]:
		return self.library.function(symbol, argtypes, restype)

	def take_string(self, s: OxbindString) -> str:
		"""Decode a returned Rust string and give its buffer back to Rust."""
		try:
			return s.decode()
		finally:
			self._string_free(s)

	def struct_class(self, name: str) -> type["ForeignStruct"]:
		try:
			return self.structs[name]
		except KeyError:
			raise TypeError(f"struct `{name}` is not bound in this module") from None

	def struct_ops(self, name: str) -> HandleOps:
		ops = self._struct_ops.get(name)
		if ops is None:
			ops = HandleOps(drop=self.fn(f"{name}_free", [ctypes.c_void_p], None))
			self._struct_ops[name] = ops
		return ops

	def handle_ops(self, desc: OwnedHandle) -> HandleOps:
		ops = self._handle_ops.get(desc)
		if ops is not None:
			return ops
		hp = next((h for h in self.plan.handles if h.type == desc), None) or handle_plan(desc)
		ops = HandleOps(
			drop=self.fn(hp.drop, [ctypes.c_void_p], None),
			clone=self.fn(hp.clone, [ctypes.c_void_p], None) if hp.clone else None,
			strong_count=self.fn(hp.count, [ctypes.c_void_p], ctypes.c_size_t) if hp.count else None,
		)
		self._handle_ops[desc] = ops
		return ops

	def _getter(self, desc: OwnedHandle) -> Callable[[int], Any]:
		getter = self._getters.get(desc)
		if getter is None:
			hp = next((h for h in self.plan.handles if h.type == desc), None) or handle_plan(desc)
			assert hp.get is not None
			getter = self.fn(hp.get, [ctypes.c_void_p], ctype_of(desc.inner))
			self._getters[desc] = getter
		return getter

	def wrap_struct(self, name: str, pointer: int) -> "ForeignStruct":
		"""Own a struct returned by value (boxed by the glue)."""
		cls = self.struct_class(name)
		handle = self.manager.adopt(pointer, OwnershipKind.UNIQUE, self.struct_ops(name), type_name=name)
		return cls._from_handle(handle)

	def wrap_handle(self, desc: OwnedHandle, pointer: int) -> Any:
		"""Own a returned `Box<T>` / `Rc<T>` / `Arc<T>`."""
		if isinstance(desc.inner, OpaqueStruct):
			if desc.kind is OwnershipKind.UNIQUE:
				return self.wrap_struct(desc.inner.name, pointer)
			cls = self.struct_class(desc.inner.name)
			handle = self.manager.adopt(pointer, desc.kind, self.handle_ops(desc), type_name=desc.rust())
			return cls._from_handle(handle, descriptor=desc)
		handle = self.manager.adopt(pointer, desc.kind, self.handle_ops(desc), type_name=desc.rust())
		return OwnedValue(handle, desc, self._getter(desc))


class ForeignStruct:
	"""
	Base class of bound structs.

	Instances own a Rust value. Fields are properties reading and writing
	through the generated accessors; methods are bound functions. `drop()`
	(or leaving a `with` block) frees the value; using it afterwards raises
	`UseAfterDrop`.
	"""

	__oxbind_plan__: ClassVar[StructPlan]
	__oxbind_runtime__: ClassVar[Runtime]
	__oxbind_descriptor__: ClassVar[TypeDescriptor]
	# Constructor used by `Struct(...)`: the `new` method, or the Default helper.
	__oxbind_new__: ClassVar[Optional[Callable[..., Any]]] = None

	_handle: OwnershipHandle

	def __init__(self, *args: Any, **kwargs: Any) -> None:
		ctor = type(self).__oxbind_new__
		if ctor is None:
			raise TypeError(f"{type(self).__name__} has no `new` constructor; use one of its constructor functions")
		made = ctor(*args, **kwargs)
		if hasattr(made, "unwrap"):
			made = made.unwrap()
		if not isinstance(made, type(self)):
			raise TypeError(f"{type(self).__name__}::new returned {type(made).__name__}, not {type(self).__name__}")
		# Adopt the new value's handle; `made` is left empty.
		self._handle = made._handle

	@classmethod
	def _from_handle(cls, handle: OwnershipHandle, *, descriptor: Optional[TypeDescriptor] = None) -> "ForeignStruct":
		obj = cls.__new__(cls)
		obj._handle = handle
		if descriptor is not None:
			obj.__oxbind_descriptor__ = descriptor
		return obj

	@property
	def _pointer(self) -> int:
		return self._handle.pointer

	@property
	def ownership(self) -> OwnershipKind:
		return self._handle.kind

	@property
	def is_shared(self) -> bool:
		return self._handle.kind.is_shared

	@property
	def dropped(self) -> bool:
		return self._handle.dropped

	def _mutable_pointer(self, operation: str) -> int:
		if self._handle.kind.is_shared:
			raise TypeError(f"cannot {operation} a shared {self._handle.type_name}: Rust only hands out shared references")
		return self._handle.pointer

	def drop(self) -> bool:
		return self._handle.drop()

	def strong_count(self) -> int:
		return self._handle.strong_count()

	def clone(self) -> "ForeignStruct":
		"""Another reference (shared objects) or a deep copy (structs deriving Clone)."""
		cls = type(self)
		if self._handle.kind.is_shared:
			return cls._from_handle(self._handle.clone(), descriptor=self.__oxbind_descriptor__)
		symbol = cls.__oxbind_plan__.helpers.get("Clone")
		if symbol is None:
			raise TypeError(f"{cls.__name__} does not implement Clone")
		rt = cls.__oxbind_runtime__
		pointer = rt.fn(symbol, [ctypes.c_void_p], ctypes.c_void_p)(self._pointer)
		return rt.wrap_struct(cls.__name__, pointer)

	def __copy__(self) -> "ForeignStruct":
		return self.clone()

	def __enter__(self) -> "ForeignStruct":
		self._handle.pointer
		return self

	def __exit__(self, *exc: object) -> None:
		self.drop()

	def _string_helper(self, capability: str) -> Optional[str]:
		cls = type(self)
		symbol = cls.__oxbind_plan__.helpers.get(capability)
		if symbol is None or self._handle.dropped:
			return None
		rt = cls.__oxbind_runtime__
		return rt.take_string(rt.fn(symbol, [ctypes.c_void_p], OxbindString)(self._pointer))

	def __repr__(self) -> str:
		name = type(self).__name__
		if self._handle.dropped:
			return f"<{name} dropped>"
		text = self._string_helper("Debug")
		if text is not None:
			return text
		return f"<{name} {self._handle.kind.value} at 0x{self._pointer:x}>"

	def __str__(self) -> str:
		text = self._string_helper("Display")
		return text if text is not None else repr(self)


def struct_equality(symbol: str) -> Callable[[ForeignStruct, Any], Any]:
	"""`__eq__` backed by the PartialEq helper."""

	def __eq__(self: ForeignStruct, other: Any) -> Any:
		if not isinstance(other, type(self)):
			return NotImplemented
		rt = type(self).__oxbind_runtime__
		return bool(rt.fn(symbol, [ctypes.c_void_p, ctypes.c_void_p], ctypes.c_bool)(self._pointer, other._pointer))

	return __eq__


class OwnedValue:
	"""A `Box`, `Rc` or `Arc` around a number or bool."""

	def __init__(self, handle: OwnershipHandle, descriptor: OwnedHandle, getter: Callable[[int], Any]) -> None:
		self._handle = handle
		self.__oxbind_descriptor__ = descriptor
		self._getter = getter

	@property
	def ownership(self) -> OwnershipKind:
		return self._handle.kind

	@property
	def dropped(self) -> bool:
		return self._handle.dropped

	@property
	def _pointer(self) -> int:
		return self._handle.pointer

	def get(self) -> Any:
		"""The current value of the pointee."""
		return self._getter(self._handle.pointer)

	value = property(get)

	def clone(self) -> "OwnedValue":
		return OwnedValue(self._handle.clone(), self.__oxbind_descriptor__, self._getter)

	def strong_count(self) -> int:
		return self._handle.strong_count()

	def drop(self) -> bool:
		return self._handle.drop()

	def __enter__(self) -> "OwnedValue":
		self._handle.pointer
		return self

	def __exit__(self, *exc: object) -> None:
		self.drop()

	def __repr__(self) -> str:
		desc = self.__oxbind_descriptor__.rust()
		if self._handle.dropped:
			return f"<{desc} dropped>"
		return f"{desc}({self.get()!r})"


__all__ = ["ForeignStruct", "OwnedValue", "Runtime", "struct_equality"]
