# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
In-process stand-ins for cargo and the dynamic loader.

`FakeToolchain` "builds" a project by writing a JSON artifact that lists the
symbols the project must export; it counts invocations and can be told to
fail. `FakeLoader` opens those artifacts as `FakeLibrary`s whose exports are
Python callables working at the C-ABI level: they receive exactly what the
bound functions pass to ctypes, and their return values are coerced into
the declared `restype` (a `str` becomes a Rust string, an `(is_ok, value)`
pair a Result struct, `None` or a value an Option struct).
"""

from __future__ import annotations

import ctypes
import itertools
import json
import threading
from pathlib import Path
from typing import Any, Callable, Iterable, Mapping, Optional, Sequence

from oxbind.build.project import ProjectHandle
from oxbind.build.toolchain import Artifact, failure_from_output
from oxbind.types.values import OxbindString

ARTIFACT_FORMAT = "oxbind-fake-artifact"


class FakeToolchain:
	def __init__(self, *, fail: bool | Callable[[ProjectHandle], Optional[str]] = False, output: str = "") -> None:
		"""
		`fail` makes every build fail (True) or decides per project: a
		callable returning compiler output fails the build with that output.
		"""
		self.fail = fail
		self.output = output or "error: could not compile\n --> src/lib.rs:3:5\n"
		self.invocations = 0
		self.handles: list[ProjectHandle] = []
		self._lock = threading.Lock()

	@property
	def sources(self) -> list[str]:
		"""`src/lib.rs` of every project built so far."""
		return [h.source_path.read_text(encoding="utf-8") for h in self.handles if h.source_path.exists()]

	def build(self, handle: ProjectHandle) -> Artifact:
		with self._lock:
			self.invocations += 1
			self.handles.append(handle)
		output: Optional[str] = None
		if callable(self.fail):
			output = self.fail(handle)
		elif self.fail:
			output = self.output
		if output is not None:
			raise failure_from_output("cargo build failed with exit code 101", output, exit_code=101, handle=handle)
		path = handle.artifact_path
		path.parent.mkdir(parents=True, exist_ok=True)
		path.write_text(
			json.dumps({"format": ARTIFACT_FORMAT, "crate": handle.name, "symbols": list(handle.symbols)}, sort_keys=True),
			encoding="utf-8",
		)
		return Artifact.from_file(path, handle.symbols)


class FakeHeap:
	"""Stands in for Rust's allocator: objects live at fake addresses."""

	def __init__(self) -> None:
		self._objects: dict[int, Any] = {}
		self._next = itertools.count(0x1000, 0x10)
		self.freed: list[int] = []
		self._lock = threading.Lock()

	def alloc(self, obj: Any) -> int:
		with self._lock:
			ptr = next(self._next)
			self._objects[ptr] = obj
			return ptr

	def get(self, ptr: int) -> Any:
		try:
			return self._objects[ptr]
		except KeyError:
			raise AssertionError(f"access to freed or unknown pointer {ptr:#x}") from None

	def free(self, ptr: int) -> Any:
		with self._lock:
			if ptr not in self._objects:
				raise AssertionError(f"double free of {ptr:#x}")
			self.freed.append(ptr)
			return self._objects.pop(ptr)

	def live(self) -> int:
		with self._lock:
			return len(self._objects)


def _is_struct(restype: Any, *names: str) -> bool:
	fields = getattr(restype, "_fields_", None)
	return fields is not None and [f[0] for f in fields][: len(names)] == list(names)


class FakeLibrary:
	def __init__(self, path: Path, exported: Sequence[str], impls: Mapping[str, Callable[..., Any]], heap: FakeHeap) -> None:
		self.path = path
		self.exported = tuple(exported)
		self._impls = dict(impls)
		self.heap = heap
		self.calls: list[tuple[str, tuple[Any, ...]]] = []
		self.freed_strings: list[str] = []
		# Buffers behind strings handed to the host; kept until freed.
		self._buffers: dict[int, Any] = {}
		self._lock = threading.Lock()

	def has(self, symbol: str) -> bool:
		return symbol in self.exported or symbol in self._impls

	def _free_string(self, s: OxbindString) -> None:
		with self._lock:
			self.freed_strings.append(s.decode())
			self._buffers.pop(s.ptr or 0, None)

	def make_string(self, text: str) -> OxbindString:
		data = text.encode("utf-8")
		buf = ctypes.create_string_buffer(data, len(data) + 1)
		addr = ctypes.addressof(buf)
		with self._lock:
			self._buffers[addr] = buf
		return OxbindString(addr, len(data), len(data) + 1)

	@property
	def live_strings(self) -> int:
		with self._lock:
			return len(self._buffers)

	def _coerce(self, value: Any, restype: Any) -> Any:
		if restype is None:
			return None
		if restype is OxbindString:
			return value if isinstance(value, OxbindString) else self.make_string(value)
		if _is_struct(restype, "is_ok", "ok_value", "err_value"):
			ok, payload = value
			out = restype()
			out.is_ok = 1 if ok else 0
			field = "ok_value" if ok else "err_value"
			setattr(out, field, self._coerce(payload, dict(restype._fields_)[field]))
			return out
		if _is_struct(restype, "is_some", "value"):
			out = restype()
			if value is not None:
				out.is_some = 1
				out.value = self._coerce(value, dict(restype._fields_)["value"])
			return out
		if restype is ctypes.c_void_p:
			return value
		if restype is ctypes.c_bool:
			return bool(value)
		if value is None:
			return restype().value
		# Emulate C truncation of scalars.
		return restype(value).value

	def function(self, symbol: str, argtypes: Sequence[Any], restype: Any) -> Callable[..., Any]:
		if symbol == "__oxbind_string_free":
			return self._free_string
		impl = self._impls.get(symbol)
		if impl is None:
			if symbol not in self.exported:
				raise AttributeError(f"{self.path.name}: undefined symbol: {symbol}")

			def impl(*args: Any) -> Any:
				raise NotImplementedError(f"fake export {symbol} has no implementation")

		def call(*args: Any) -> Any:
			with self._lock:
				self.calls.append((symbol, args))
			return self._coerce(impl(*args), restype)

		return call

	def called(self, symbol: str) -> list[tuple[Any, ...]]:
		with self._lock:
			return [args for sym, args in self.calls if sym == symbol]


class FakeLoader:
	"""
	Loads fake artifacts. `impls` maps exported symbols to Python callables
	and applies to every library this loader opens.
	"""

	def __init__(self, impls: Mapping[str, Callable[..., Any]] | None = None) -> None:
		self.impls: dict[str, Callable[..., Any]] = dict(impls or {})
		self.heap = FakeHeap()
		self.libraries: list[FakeLibrary] = []
		self.loads = 0
		self._lock = threading.Lock()

	def _exported(self, path: Path) -> list[str]:
		data = json.loads(Path(path).read_text(encoding="utf-8"))
		if data.get("format") != ARTIFACT_FORMAT:
			raise OSError(f"{path}: not a fake artifact")
		return list(data["symbols"])

	def load(self, path: Path) -> FakeLibrary:
		try:
			exported = self._exported(path)
		except (ValueError, KeyError) as err:
			raise OSError(f"{path}: invalid artifact: {err}") from err
		lib = FakeLibrary(Path(path), exported, self.impls, self.heap)
		with self._lock:
			self.loads += 1
			self.libraries.append(lib)
		return lib

	def probe(self, path: Path, symbols: Iterable[str]) -> bool:
		try:
			exported = set(self._exported(path))
		except (OSError, ValueError, KeyError):
			return False
		return set(symbols) <= exported

	@property
	def library(self) -> FakeLibrary:
		"""The most recently loaded library."""
		return self.libraries[-1]


__all__ = ["FakeHeap", "FakeLibrary", "FakeLoader", "FakeToolchain"]
