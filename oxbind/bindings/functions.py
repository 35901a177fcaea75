# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Bound functions: host callables that marshal arguments, call the exported
symbol and convert the result.

Arguments are validated in full before anything is moved into Rust, so a
failing call leaves every argument usable. Values that Rust takes by value
(`Box<T>`, structs) are marked moved only after validation; using them
afterwards raises `UseAfterDrop`.
"""

from __future__ import annotations

import ctypes
import inspect
import operator
import types
from numbers import Real
from typing import Any, Callable, Optional

from oxbind.codegen.plan import CallPlan
from oxbind.front.signatures import ReceiverKind
from oxbind.ownership import OwnershipHandle
from oxbind.types.bridge import INT_RANGES, Marshal, ctype_of, to_host
from oxbind.types.descriptors import (
	OpaqueStruct,
	OptionType,
	OwnedHandle,
	OwnershipKind,
	Pointer,
	Primitive,
	ResultType,
	Slice,
	TypeDescriptor,
)
from oxbind.types.values import ForeignOption, ForeignResult, OxbindString, option_struct, result_struct

from .objects import ForeignStruct, OwnedValue, Runtime

_MAX_CHAR = 0x10FFFF


def value_ctype(desc: TypeDescriptor, marshal: Marshal) -> Any:
	"""ctypes type of one C-level value (returns and Result/Option payloads)."""
	if marshal is Marshal.DIRECT:
		return ctype_of(desc)
	if marshal is Marshal.CHAR:
		return ctypes.c_uint32
	if marshal is Marshal.UNIT:
		return ctypes.c_uint8
	if marshal is Marshal.STR:
		return OxbindString
	if marshal in (Marshal.STRUCT_VALUE, Marshal.HANDLE):
		return ctypes.c_void_p
	raise ValueError(f"no ctypes type for {marshal.value} `{desc.rust()}`")


def restype_of(call: CallPlan) -> Any:
	if call.ret_marshal is Marshal.UNIT:
		return None
	ret = call.ret
	if call.ret_marshal is Marshal.RESULT and isinstance(ret, ResultType):
		ok_m, err_m = call.payload
		return result_struct(value_ctype(ret.ok, ok_m), value_ctype(ret.err, err_m))
	if call.ret_marshal is Marshal.OPTION and isinstance(ret, OptionType):
		(inner_m,) = call.payload
		return option_struct(value_ctype(ret.inner, inner_m))
	return value_ctype(ret, call.ret_marshal)


def argtypes_of(call: CallPlan) -> list[Any]:
	out: list[Any] = []
	if call.receiver in (ReceiverKind.REF, ReceiverKind.MUT_REF, ReceiverKind.VALUE):
		out.append(ctypes.c_void_p)
	for arg in call.args:
		m, desc = arg.marshal, arg.type
		if m is Marshal.DIRECT:
			out.append(ctype_of(desc))
		elif m is Marshal.CHAR:
			out.append(ctypes.c_uint32)
		elif m is Marshal.STR:
			out.extend((ctypes.c_char_p, ctypes.c_size_t))
		elif m is Marshal.SLICE and isinstance(desc, Slice):
			out.extend((ctypes.POINTER(ctype_of(desc.elem)), ctypes.c_size_t))
		elif m is Marshal.SCALAR_REF and isinstance(desc, Pointer):
			out.append(ctypes.POINTER(ctype_of(desc.to)))
		else:
			out.append(ctypes.c_void_p)
	return out


def convert_scalar(desc: Primitive, value: Any, where: str) -> Any:
	"""Validate a host number/bool for primitive `desc`."""
	if isinstance(value, ctypes._SimpleCData):
		value = value.value
	name = desc.name
	if name == "bool":
		if not isinstance(value, (bool, int)):
			raise TypeError(f"{where}: expected bool, got {type(value).__name__}")
		return bool(value)
	if desc.is_int:
		try:
			value = operator.index(value)
		except TypeError:
			raise TypeError(f"{where}: expected int for `{name}`, got {type(value).__name__}") from None
		lo, hi = INT_RANGES[name]
		if not lo <= value <= hi:
			raise OverflowError(f"{where}: {value} does not fit in `{name}` ({lo}..={hi})")
		return value
	if desc.is_float:
		if not isinstance(value, Real):
			raise TypeError(f"{where}: expected float for `{name}`, got {type(value).__name__}")
		return float(value)
	if name == "char":
		return convert_char(value, where)
	raise TypeError(f"{where}: `{name}` cannot be passed")


def convert_char(value: Any, where: str) -> int:
	if isinstance(value, str):
		if len(value) != 1:
			raise TypeError(f"{where}: expected a single character, got a string of length {len(value)}")
		return ord(value)
	try:
		code = operator.index(value)
	except TypeError:
		raise TypeError(f"{where}: expected a character, got {type(value).__name__}") from None
	if not 0 <= code <= _MAX_CHAR or 0xD800 <= code <= 0xDFFF:
		raise ValueError(f"{where}: {code:#x} is not a Unicode scalar value")
	return code


def _raw_pointer(value: Any, where: str) -> Optional[int]:
	if value is None or isinstance(value, int):
		return value
	if isinstance(value, ctypes.c_void_p):
		return value.value
	if isinstance(value, (ctypes._Pointer, ctypes.Array)):
		return ctypes.cast(value, ctypes.c_void_p).value
	raise TypeError(f"{where}: expected an address (int, None or a ctypes pointer), got {type(value).__name__}")


def _encode(value: Any, where: str) -> bytes:
	if isinstance(value, str):
		return value.encode("utf-8")
	if isinstance(value, (bytes, bytearray)):
		return bytes(value)
	raise TypeError(f"{where}: expected str, got {type(value).__name__}")


class _Call:
	"""Argument state of one invocation."""

	__slots__ = ("args", "moves", "writebacks", "keep")

	def __init__(self) -> None:
		self.args: list[Any] = []
		self.moves: list[OwnershipHandle] = []
		self.writebacks: list[Callable[[], None]] = []
		self.keep: list[Any] = []


class BoundFunction:
	"""
	A host callable for one exported Rust function or method.

	Methods taking `self` are bound to instances through the descriptor
	protocol; associated functions (constructors) behave like static methods.
	"""

	def __init__(self, runtime: Runtime, call: CallPlan) -> None:
		self.runtime = runtime
		self.call = call
		self.__name__ = call.name
		self.__qualname__ = call.signature.qualified_name.replace("::", ".")
		self._fn = runtime.fn(call.symbol, argtypes_of(call), restype_of(call))
		params = [inspect.Parameter(a.name, inspect.Parameter.POSITIONAL_OR_KEYWORD) for a in call.args]
		if self.takes_self:
			params.insert(0, inspect.Parameter("self", inspect.Parameter.POSITIONAL_ONLY))
		self.__signature__ = inspect.Signature(params)
		self.__doc__ = self._describe()

	@property
	def takes_self(self) -> bool:
		return self.call.receiver in (ReceiverKind.REF, ReceiverKind.MUT_REF, ReceiverKind.VALUE)

	def _describe(self) -> str:
		sig = self.call.signature
		params = ", ".join(f"{p.name}: {p.text}" for p in sig.params)
		return f"fn {sig.name}({params}) -> {sig.ret_text}"

	def host_types(self) -> dict[str, Any]:
		"""Host view of the parameter and return types."""
		structs = self.runtime.plan.known_structs
		out = {a.name: to_host(a.type, known_structs=structs) for a in self.call.args}
		out["return"] = to_host(self.call.ret, known_structs=structs)
		return out

	def __get__(self, instance: Any, owner: Any = None) -> Any:
		if instance is None or not self.takes_self:
			return self
		return types.MethodType(self, instance)

	def __repr__(self) -> str:
		return f"<bound Rust function {self.__qualname__}>"

	def __call__(self, *args: Any, **kwargs: Any) -> Any:
		self.runtime.manager.flush_deferred()
		try:
			bound = self.__signature__.bind(*args, **kwargs)
		except TypeError as err:
			raise TypeError(f"{self.__qualname__}(): {err}") from None
		state = _Call()
		values = bound.arguments
		if self.takes_self:
			self._receiver(values["self"], state)
		for arg in self.call.args:
			self._argument(arg.name, arg.type, arg.marshal, values[arg.name], state)
		# Everything validated: ownership moves into Rust now.
		for handle in state.moves:
			handle.take()
		raw = self._fn(*state.args)
		for writeback in state.writebacks:
			writeback()
		return self._convert_return(raw)

	def _struct_arg(self, name: str, value: Any, where: str) -> ForeignStruct:
		cls = self.runtime.struct_class(name)
		if not isinstance(value, cls):
			raise TypeError(f"{where}: expected {name}, got {type(value).__name__}")
		return value

	def _receiver(self, value: Any, state: _Call) -> None:
		owner = self.call.owner
		assert owner is not None
		obj = self._struct_arg(owner, value, f"{self.__qualname__}(self)")
		receiver = self.call.receiver
		if receiver is ReceiverKind.REF:
			state.args.append(obj._pointer)
		elif receiver is ReceiverKind.MUT_REF:
			state.args.append(obj._mutable_pointer(f"call `&mut self` method {self.__name__} on"))
		else:
			state.args.append(obj._mutable_pointer(f"move (call `self` method {self.__name__} on)"))
			state.moves.append(obj._handle)

	def _argument(self, name: str, desc: TypeDescriptor, marshal: Marshal, value: Any, state: _Call) -> None:
		where = f"{self.__qualname__}({name})"
		if marshal is Marshal.DIRECT:
			if isinstance(desc, Primitive):
				state.args.append(convert_scalar(desc, value, where))
			else:
				state.args.append(_raw_pointer(value, where))
		elif marshal is Marshal.CHAR:
			state.args.append(convert_char(value, where))
		elif marshal is Marshal.STR:
			data = _encode(value, where)
			state.keep.append(data)
			state.args.extend((data, len(data)))
		elif marshal is Marshal.SLICE and isinstance(desc, Slice):
			self._slice(desc, value, where, state)
		elif marshal is Marshal.SCALAR_REF and isinstance(desc, Pointer) and isinstance(desc.to, Primitive):
			ctype = ctype_of(desc.to)
			if isinstance(value, ctype):
				cell = value
			elif desc.mutable:
				raise TypeError(f"{where}: `{desc.rust()}` needs a {ctype.__name__} instance to write into")
			else:
				cell = ctype(convert_scalar(desc.to, value, where))
			state.keep.append(cell)
			state.args.append(ctypes.byref(cell))
		elif marshal is Marshal.STRUCT_REF and isinstance(desc, Pointer) and isinstance(desc.to, OpaqueStruct):
			obj = self._struct_arg(desc.to.name, value, where)
			state.args.append(obj._mutable_pointer("mutably borrow") if desc.mutable else obj._pointer)
		elif marshal is Marshal.STRUCT_VALUE and isinstance(desc, OpaqueStruct):
			obj = self._struct_arg(desc.name, value, where)
			state.args.append(obj._mutable_pointer("move"))
			state.moves.append(obj._handle)
		elif marshal is Marshal.HANDLE and isinstance(desc, OwnedHandle):
			self._handle_arg(desc, value, where, state)
		else:
			raise TypeError(f"{where}: cannot pass `{desc.rust()}`")

	def _slice(self, desc: Slice, value: Any, where: str, state: _Call) -> None:
		assert isinstance(desc.elem, Primitive)
		ctype = ctype_of(desc.elem)
		if isinstance(value, ctypes.Array) and value._type_ is ctype:
			arr = value
		elif isinstance(value, (bytes, bytearray, memoryview)) and ctypes.sizeof(ctype) == 1 and desc.elem.name != "bool":
			n = len(value)
			if desc.mutable:
				if isinstance(value, bytes):
					raise TypeError(f"{where}: `{desc.rust()}` needs a mutable buffer, got bytes")
				arr = (ctype * n).from_buffer(value)
			else:
				arr = (ctype * n).from_buffer_copy(value)
		elif isinstance(value, (str, bytes, dict)) or not hasattr(value, "__iter__"):
			raise TypeError(f"{where}: expected a sequence for `{desc.rust()}`, got {type(value).__name__}")
		else:
			if desc.mutable and not isinstance(value, list):
				raise TypeError(f"{where}: `{desc.rust()}` needs a list to write back into, got {type(value).__name__}")
			items = [convert_scalar(desc.elem, v, f"{where}[{i}]") for i, v in enumerate(value)]
			arr = (ctype * len(items))(*items)
			if desc.mutable:
				target = value

				def writeback() -> None:
					target[:] = list(arr)

				state.writebacks.append(writeback)
		state.keep.append(arr)
		state.args.extend((ctypes.cast(arr, ctypes.POINTER(ctype)), len(arr)))

	def _handle_arg(self, desc: OwnedHandle, value: Any, where: str, state: _Call) -> None:
		if isinstance(desc.inner, OpaqueStruct):
			obj = self._struct_arg(desc.inner.name, value, where)
			handle = obj._handle
		elif isinstance(value, OwnedValue) and value.__oxbind_descriptor__ == desc:
			handle = value._handle
		else:
			raise TypeError(f"{where}: expected {desc.rust()}, got {type(value).__name__}")
		if handle.kind is not desc.kind:
			raise TypeError(f"{where}: expected {desc.rust()}, got a {handle.kind.value} {handle.type_name}")
		state.args.append(handle.pointer)
		if desc.kind is OwnershipKind.UNIQUE:
			state.moves.append(handle)

	def _payload(self, desc: TypeDescriptor, marshal: Marshal, raw: Any) -> Any:
		rt = self.runtime
		if marshal is Marshal.DIRECT:
			return raw
		if marshal is Marshal.CHAR:
			return chr(raw)
		if marshal is Marshal.UNIT:
			return None
		if marshal is Marshal.STR:
			return rt.take_string(raw)
		if marshal is Marshal.STRUCT_VALUE:
			return rt.wrap_struct(desc.rust(), raw)
		if marshal is Marshal.HANDLE and isinstance(desc, OwnedHandle):
			return rt.wrap_handle(desc, raw)
		raise TypeError(f"cannot convert {marshal.value} `{desc.rust()}`")

	def _convert_return(self, raw: Any) -> Any:
		call = self.call
		ret = call.ret
		if call.ret_marshal is Marshal.RESULT and isinstance(ret, ResultType):
			ok_m, err_m = call.payload
			# Only the active side is initialized (and owned).
			if raw.is_ok:
				return ForeignResult.from_ok(self._payload(ret.ok, ok_m, raw.ok_value))
			return ForeignResult.from_err(self._payload(ret.err, err_m, raw.err_value))
		if call.ret_marshal is Marshal.OPTION and isinstance(ret, OptionType):
			(inner_m,) = call.payload
			if raw.is_some:
				return ForeignOption.from_value(self._payload(ret.inner, inner_m, raw.value))
			return ForeignOption.empty()
		return self._payload(ret, call.ret_marshal, raw)


__all__ = ["BoundFunction", "argtypes_of", "convert_char", "convert_scalar", "restype_of", "value_ctype"]
