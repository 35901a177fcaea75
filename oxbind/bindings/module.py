# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Host modules.

`bind_module` turns a binding plan and a loaded library into a `HostModule`:
a read-only mapping from declaration names to bound functions and struct
classes that also supports attribute access (`mod.add(1, 2)`,
`mod.Point(1.0, 2.0)`). Declarations that were rejected stay visible by
name: looking one up raises the `UnsupportedType` explaining why.
"""

from __future__ import annotations

import ctypes
from collections.abc import Mapping
from typing import Any, Iterator, Optional, Sequence

from oxbind.build.toolchain import Artifact
from oxbind.codegen.plan import BindingPlan, FieldPlan, StructPlan
from oxbind.core.diagnostics import Diagnostic
from oxbind.core.errors import UnsupportedType
from oxbind.core.logging import get_logger
from oxbind.front.signatures import ReceiverKind
from oxbind.types.bridge import Marshal
from oxbind.types.descriptors import OpaqueStruct, Primitive

from .functions import BoundFunction, _raw_pointer, convert_char, convert_scalar, value_ctype
from .objects import ForeignStruct, Runtime, struct_equality

logger = get_logger("bindings")


class RejectedMember:
	"""Class attribute standing in for a method that could not be bound."""

	def __init__(self, name: str, error: UnsupportedType) -> None:
		self.name = name
		self.error = error

	def __get__(self, instance: Any, owner: Any = None) -> Any:
		raise self.error

	def __repr__(self) -> str:
		return f"<rejected {self.name}: {self.error.message}>"


def _field_property(rt: Runtime, sp: StructPlan, f: FieldPlan) -> Optional[property]:
	fget = fset = None
	if f.getter:
		getter = rt.fn(f.getter, [ctypes.c_void_p], value_ctype(f.type, f.marshal))

		def fget(self: ForeignStruct) -> Any:
			raw = getter(self._pointer)
			if f.marshal is Marshal.CHAR:
				return chr(raw)
			if f.marshal is Marshal.STR:
				return rt.take_string(raw)
			return raw

	if f.setter:
		where = f"{sp.name}.{f.name}"
		if f.marshal is Marshal.STR:
			setter = rt.fn(f.setter, [ctypes.c_void_p, ctypes.c_char_p, ctypes.c_size_t], None)

			def fset(self: ForeignStruct, value: Any) -> None:
				if not isinstance(value, str):
					raise TypeError(f"{where}: expected str, got {type(value).__name__}")
				data = value.encode("utf-8")
				setter(self._mutable_pointer("assign a field of"), data, len(data))

		else:
			ctype = ctypes.c_uint32 if f.marshal is Marshal.CHAR else value_ctype(f.type, f.marshal)
			setter = rt.fn(f.setter, [ctypes.c_void_p, ctype], None)

			def fset(self: ForeignStruct, value: Any) -> None:
				if f.marshal is Marshal.CHAR:
					converted = convert_char(value, where)
				elif isinstance(f.type, Primitive):
					converted = convert_scalar(f.type, value, where)
				else:
					converted = _raw_pointer(value, where)
				setter(self._mutable_pointer("assign a field of"), converted)

	if fget is None and fset is None:
		return None
	return property(fget, fset, doc=f"{f.name}: {f.type.rust()}")


def build_struct_class(rt: Runtime, sp: StructPlan, rejected: Mapping[str, UnsupportedType]) -> type[ForeignStruct]:
	"""The host class for one bound struct."""
	name = sp.name
	ns: dict[str, Any] = {
		"__module__": "oxbind.bound",
		"__doc__": f"Rust struct `{name}` ({sp.struct.shape}).",
		"__oxbind_plan__": sp,
		"__oxbind_runtime__": rt,
		"__oxbind_descriptor__": OpaqueStruct(name),
	}
	methods = {m.name: BoundFunction(rt, m) for m in sp.methods}
	for f in sp.fields:
		if f.name in methods:
			logger.debug("method %s.%s hides the field of the same name", name, f.name)
			continue
		prop = _field_property(rt, sp, f)
		if prop is not None:
			ns[f.name] = prop
	ns.update(methods)
	prefix = f"{name}."
	for key, err in rejected.items():
		if key.startswith(prefix):
			method = key[len(prefix) :]
			ns[method] = RejectedMember(key, err)
	eq = sp.helpers.get("PartialEq")
	if eq is not None:
		ns["__eq__"] = struct_equality(eq)
		ns["__hash__"] = None
	new = methods.get("new")
	if new is not None and new.call.receiver is ReceiverKind.STATIC:
		ns["__oxbind_new__"] = new
	cls = type(name, (ForeignStruct,), ns)
	default = sp.helpers.get("Default")
	if default is not None:
		make_default = rt.fn(default, [], ctypes.c_void_p)

		def _default(klass: type) -> ForeignStruct:
			return rt.wrap_struct(name, make_default())

		if "default" not in methods:
			cls.default = classmethod(_default)
		if cls.__oxbind_new__ is None:
			cls.__oxbind_new__ = lambda: _default(cls)
	return cls


class HostModule(Mapping):
	"""The bound contents of one compiled source."""

	def __init__(
		self,
		members: Mapping[str, Any],
		*,
		name: str = "oxbind_module",
		rejected: Mapping[str, UnsupportedType] | None = None,
		diagnostics: Sequence[Diagnostic] = (),
		artifact: Artifact | None = None,
		runtime: Runtime | None = None,
	) -> None:
		self._members = dict(members)
		self._name = name
		self._rejected = dict(rejected or {})
		self._diagnostics = tuple(diagnostics)
		self._artifact = artifact
		self._runtime = runtime

	@property
	def name(self) -> str:
		return self._name

	@property
	def artifact(self) -> Artifact | None:
		return self._artifact

	@property
	def diagnostics(self) -> tuple[Diagnostic, ...]:
		return self._diagnostics

	@property
	def rejected(self) -> dict[str, UnsupportedType]:
		"""Declaration name (`f`, `Point`, `Point.method`) -> why it was not bound."""
		return dict(self._rejected)

	@property
	def symbols(self) -> tuple[str, ...]:
		return self._runtime.plan.symbols if self._runtime is not None else ()

	def drop_all(self) -> int:
		"""Release every foreign value still owned through this module's context."""
		if self._runtime is None:
			return 0
		return self._runtime.manager.drop_all()

	def __getitem__(self, key: str) -> Any:
		try:
			return self._members[key]
		except KeyError:
			pass
		if key in self._rejected:
			raise self._rejected[key]
		raise KeyError(key)

	def __getattr__(self, key: str) -> Any:
		if key.startswith("_"):
			raise AttributeError(key)
		try:
			return self[key]
		except KeyError:
			raise AttributeError(f"module {self._name!r} has no member {key!r}") from None

	def __contains__(self, key: object) -> bool:
		return key in self._members

	def __iter__(self) -> Iterator[str]:
		return iter(self._members)

	def __len__(self) -> int:
		return len(self._members)

	def __dir__(self) -> list[str]:
		return sorted(set(super().__dir__()) | set(self._members))

	def __repr__(self) -> str:
		return f"<HostModule {self._name} members={sorted(self._members)}>"


def bind_module(
	rt: Runtime,
	plan: BindingPlan,
	*,
	name: str,
	extra: Mapping[str, Any] | None = None,
	diagnostics: Sequence[Diagnostic] = (),
	artifact: Artifact | None = None,
) -> HostModule:
	"""Build the struct classes and bound functions of `plan` over `rt`."""
	members: dict[str, Any] = {}
	for sp in plan.structs:
		cls = build_struct_class(rt, sp, plan.rejected)
		rt.structs[sp.name] = cls
		members[sp.name] = cls
	for call in plan.functions:
		members[call.name] = BoundFunction(rt, call)
	if extra:
		members.update(extra)
	top_level = {k: v for k, v in plan.rejected.items() if "." not in k}
	return HostModule(members, name=name, rejected=top_level, diagnostics=diagnostics, artifact=artifact, runtime=rt)


__all__ = ["HostModule", "RejectedMember", "bind_module", "build_struct_class"]
