# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Loading compiled artifacts into the host process.

The loader is the only place that touches the dynamic linker. Everything
above it sees a `Library`: something that hands out callables for exported
symbols with a given C signature.
"""

from __future__ import annotations

import ctypes
import threading
from pathlib import Path
from typing import Any, Callable, Iterable, Protocol, Sequence

from oxbind.core.logging import get_logger

logger = get_logger("bindings")


class Library(Protocol):
	path: Path

	def function(self, symbol: str, argtypes: Sequence[Any], restype: Any) -> Callable[..., Any]: ...

	def has(self, symbol: str) -> bool: ...


class Loader(Protocol):
	def load(self, path: Path) -> Library: ...

	def probe(self, path: Path, symbols: Sequence[str]) -> bool: ...


class CtypesLibrary:
	"""A shared library opened with `ctypes.CDLL`."""

	def __init__(self, path: Path) -> None:
		self.path = path
		self._dll = ctypes.CDLL(str(path))

	def has(self, symbol: str) -> bool:
		try:
			self._dll[symbol]
		except AttributeError:
			return False
		return True

	def function(self, symbol: str, argtypes: Sequence[Any], restype: Any) -> Callable[..., Any]:
		# Indexing returns a fresh function pointer, so each binding keeps its own signature.
		fn = self._dll[symbol]
		fn.argtypes = list(argtypes)
		fn.restype = restype
		return fn

	def missing(self, symbols: Iterable[str]) -> list[str]:
		return [s for s in symbols if not self.has(s)]

	def __repr__(self) -> str:
		return f"<CtypesLibrary {self.path}>"


class CtypesLoader:
	"""Opens each artifact path once and reuses the library afterwards."""

	def __init__(self) -> None:
		self._lock = threading.Lock()
		self._loaded: dict[Path, CtypesLibrary] = {}

	def load(self, path: Path) -> CtypesLibrary:
		path = Path(path).resolve()
		with self._lock:
			lib = self._loaded.get(path)
			if lib is None:
				logger.debug("loading %s", path)
				lib = CtypesLibrary(path)
				self._loaded[path] = lib
			return lib

	def probe(self, path: Path, symbols: Sequence[str]) -> bool:
		"""True when `path` loads and exports every symbol in `symbols`."""
		try:
			lib = self.load(path)
		except OSError as err:
			logger.debug("artifact %s does not load: %s", path, err)
			return False
		missing = lib.missing(symbols)
		if missing:
			logger.debug("artifact %s lacks %s", path, ", ".join(missing))
			return False
		return True


__all__ = ["CtypesLibrary", "CtypesLoader", "Library", "Loader"]
