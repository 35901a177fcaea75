# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Host-side value types for `Result`, `Option` and returned strings.

`Result<T, E>` and `Option<T>` returns are lowered by the generated glue to
`#[repr(C)]` tagged structs; the ctypes layouts for those live here together
with the host wrappers the caller sees.
"""

from __future__ import annotations

import ctypes
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Callable

from oxbind.core.errors import ForeignError


class OxbindString(ctypes.Structure):
	"""A Rust `String` handed to the host: released with `__oxbind_string_free`."""

	_fields_ = [
		("ptr", ctypes.c_void_p),
		("len", ctypes.c_size_t),
		("cap", ctypes.c_size_t),
	]

	def decode(self) -> str:
		if not self.ptr or not self.len:
			return ""
		return ctypes.string_at(self.ptr, self.len).decode("utf-8")


@lru_cache(maxsize=None)
def result_struct(ok_ctype: Any, err_ctype: Any) -> type:
	"""ctypes layout of `OxbindResult_*` for the given payload types."""
	name = f"OxbindResult_{getattr(ok_ctype, '__name__', 'unit')}_{getattr(err_ctype, '__name__', 'unit')}"
	return type(
		name,
		(ctypes.Structure,),
		{"_fields_": [("is_ok", ctypes.c_uint8), ("ok_value", ok_ctype), ("err_value", err_ctype)]},
	)


@lru_cache(maxsize=None)
def option_struct(ctype: Any) -> type:
	"""ctypes layout of `OxbindOption_*`."""
	name = f"OxbindOption_{getattr(ctype, '__name__', 'unit')}"
	return type(
		name,
		(ctypes.Structure,),
		{"_fields_": [("is_some", ctypes.c_uint8), ("value", ctype)]},
	)


@dataclass(frozen=True, repr=False)
class ForeignResult:
	"""
	A Rust `Result` returned across the boundary.

	The payload has already been converted to a host value (int, str, a bound
	struct object, ...).
	"""

	succeeded: bool
	value: Any

	@classmethod
	def from_ok(cls, value: Any) -> "ForeignResult":
		return cls(True, value)

	@classmethod
	def from_err(cls, error: Any) -> "ForeignResult":
		return cls(False, error)

	def is_ok(self) -> bool:
		return self.succeeded

	def is_err(self) -> bool:
		return not self.succeeded

	def unwrap(self) -> Any:
		if not self.succeeded:
			raise ForeignError(message=f"called unwrap() on an Err value: {self.value!r}", value=self.value)
		return self.value

	def expect(self, message: str) -> Any:
		if not self.succeeded:
			raise ForeignError(message=f"{message}: {self.value!r}", value=self.value)
		return self.value

	def unwrap_err(self) -> Any:
		if self.succeeded:
			raise ForeignError(message=f"called unwrap_err() on an Ok value: {self.value!r}", value=self.value)
		return self.value

	def unwrap_or(self, default: Any) -> Any:
		return self.value if self.succeeded else default

	def unwrap_or_else(self, fn: Callable[[Any], Any]) -> Any:
		return self.value if self.succeeded else fn(self.value)

	def ok(self) -> "ForeignOption":
		return ForeignOption.from_value(self.value) if self.succeeded else ForeignOption.empty()

	def err(self) -> "ForeignOption":
		return ForeignOption.empty() if self.succeeded else ForeignOption.from_value(self.value)

	def __repr__(self) -> str:
		return f"Ok({self.value!r})" if self.succeeded else f"Err({self.value!r})"


@dataclass(frozen=True, repr=False)
class ForeignOption:
	"""A Rust `Option` returned across the boundary."""

	present: bool
	value: Any = None

	@classmethod
	def from_value(cls, value: Any) -> "ForeignOption":
		return cls(True, value)

	@classmethod
	def empty(cls) -> "ForeignOption":
		return cls(False, None)

	def is_some(self) -> bool:
		return self.present

	def is_none(self) -> bool:
		return not self.present

	def unwrap(self) -> Any:
		if not self.present:
			raise ForeignError(message="called unwrap() on a None value")
		return self.value

	def expect(self, message: str) -> Any:
		if not self.present:
			raise ForeignError(message=message)
		return self.value

	def unwrap_or(self, default: Any) -> Any:
		return self.value if self.present else default

	def __bool__(self) -> bool:
		return self.present

	def __repr__(self) -> str:
		return f"Some({self.value!r})" if self.present else "None"


__all__ = ["ForeignOption", "ForeignResult", "OxbindString", "option_struct", "result_struct"]
