# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Compiler context.

A `CompilerContext` owns everything that outlives one `compile_and_bind`
call: the artifact caches (one per cache root), the loaded libraries, the
generic registry and its instances, and the ownership manager. Contexts are
explicit so tests and independent callers never share state by accident.

One coarse `RLock` guards the context's tables. Builds run outside it.
"""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Any, Optional

from oxbind.bindings.loader import CtypesLoader, Library, Loader
from oxbind.build.cache import CompilationCache
from oxbind.build.orchestrator import BuildOrchestrator
from oxbind.build.toolchain import Artifact, CargoToolchain, Toolchain
from oxbind.config import CompilerConfig
from oxbind.core.logging import get_logger
from oxbind.generics.monomorphizer import Monomorphizer
from oxbind.ownership import OwnershipManager

logger = get_logger("context")


class CompilerContext:
	def __init__(
		self,
		*,
		toolchain: Optional[Toolchain] = None,
		loader: Optional[Loader] = None,
		manager: Optional[OwnershipManager] = None,
	) -> None:
		self.lock = threading.RLock()
		self._toolchain = toolchain
		self.loader: Loader = loader if loader is not None else CtypesLoader()
		self.manager = manager if manager is not None else OwnershipManager()
		self.monomorphizer = Monomorphizer(self.lock)
		self._caches: dict[Path, CompilationCache] = {}
		self._libraries: dict[Path, Library] = {}
		# Cache key digest -> host module built from it.
		self._modules: dict[str, Any] = {}

	def toolchain_for(self, config: CompilerConfig) -> Toolchain:
		if self._toolchain is not None:
			return self._toolchain
		return CargoToolchain(config.cargo, env=config.env)

	def cache_for(self, config: CompilerConfig) -> CompilationCache:
		root = config.resolved_cache_root.resolve()
		with self.lock:
			cache = self._caches.get(root)
			if cache is None:
				cache = CompilationCache(root, verify=self.loader.probe)
				self._caches[root] = cache
			return cache

	def orchestrator_for(self, config: CompilerConfig) -> BuildOrchestrator:
		return BuildOrchestrator(
			self.toolchain_for(config),
			self.cache_for(config),
			build_root=config.build_root,
			keep_build_dirs=config.keep_build_dirs,
		)

	def load_artifact(self, artifact: Artifact) -> Library:
		"""Load `artifact` once per context."""
		path = Path(artifact.path).resolve()
		with self.lock:
			lib = self._libraries.get(path)
			if lib is None:
				lib = self.loader.load(path)
				self._libraries[path] = lib
			return lib

	def loaded(self) -> list[Path]:
		with self.lock:
			return list(self._libraries)

	def module_for(self, digest: str) -> Any:
		with self.lock:
			return self._modules.get(digest)

	def remember_module(self, digest: str, module: Any) -> Any:
		"""Store `module` unless one was stored concurrently; returns the kept one."""
		with self.lock:
			return self._modules.setdefault(digest, module)

	def close(self) -> int:
		"""Drop every live foreign value owned through this context."""
		return self.manager.drop_all()

	def __enter__(self) -> "CompilerContext":
		return self

	def __exit__(self, *exc: object) -> None:
		self.close()


__all__ = ["CompilerContext"]
