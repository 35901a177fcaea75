# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Build orchestration: project materialization, toolchain invocation, caching.

Every build goes through `build_cached`, so unchanged inputs never reach the
toolchain. Each fresh build gets its own project directory; concurrent builds
of different keys run as independent subprocesses.
"""

from __future__ import annotations

import os
import secrets
import shutil
from pathlib import Path
from typing import Iterable

from oxbind.config import CompilerConfig
from oxbind.core.errors import BuildFailure
from oxbind.core.logging import get_logger
from oxbind.deps.spec import DependencySpec

from .cache import CacheKey, CompilationCache
from .project import ProjectHandle, materialize
from .toolchain import Artifact, Toolchain

logger = get_logger("build")


class BuildOrchestrator:
	def __init__(
		self,
		toolchain: Toolchain,
		cache: CompilationCache,
		*,
		build_root: Path | None = None,
		keep_build_dirs: bool = False,
	) -> None:
		self.toolchain = toolchain
		self.cache = cache
		self.build_root = build_root if build_root is not None else cache.base / "builds"
		self.keep_build_dirs = keep_build_dirs

	def project_dir(self, name: str) -> Path:
		return self.build_root / f"{name}-{os.getpid()}-{secrets.token_hex(4)}"

	def materialize(
		self,
		name: str,
		deps: Iterable[DependencySpec],
		source: str,
		*,
		config: CompilerConfig,
		symbols: Iterable[str] = (),
		line_offset: int = 0,
		user_lines: int = 0,
		root: Path | None = None,
	) -> ProjectHandle:
		return materialize(
			name,
			deps,
			source,
			root=root or self.project_dir(name),
			config=config,
			symbols=symbols,
			line_offset=line_offset,
			user_lines=user_lines,
		)

	def build(self, handle: ProjectHandle) -> Artifact:
		return self.toolchain.build(handle)

	def build_with_recovery(
		self,
		name: str,
		deps: tuple[DependencySpec, ...],
		source: str,
		*,
		config: CompilerConfig,
		symbols: tuple[str, ...] = (),
		line_offset: int = 0,
		user_lines: int = 0,
		root: Path,
	) -> Artifact:
		"""
		Build once; with `config.recovery`, retry a failure at opt-level 0.

		When the retry fails as well the first failure is raised.
		"""
		kwargs = dict(symbols=symbols, line_offset=line_offset, user_lines=user_lines, root=root)
		handle = self.materialize(name, deps, source, config=config, **kwargs)
		try:
			return self.build(handle)
		except BuildFailure as first:
			if not config.recovery:
				raise
			logger.warning("build of %s failed; retrying at opt-level 0 with debug info", name)
			retry = self.materialize(name, deps, source, config=config.recovery_variant(), **kwargs)
			try:
				return self.build(retry)
			except BuildFailure:
				first.notes.append("a retry at opt-level 0 with debug info failed as well")
				raise first from None

	def build_cached(
		self,
		key: CacheKey,
		name: str,
		deps: Iterable[DependencySpec],
		source: str,
		*,
		config: CompilerConfig,
		symbols: Iterable[str] = (),
		line_offset: int = 0,
		user_lines: int = 0,
	) -> Artifact:
		"""Return the artifact for `key`, building it on a cache miss."""
		deps = tuple(deps)
		symbols = tuple(symbols)
		roots: list[Path] = []

		def build_fn() -> Artifact:
			root = self.project_dir(name)
			roots.append(root)
			return self.build_with_recovery(
				name,
				deps,
				source,
				config=config,
				symbols=symbols,
				line_offset=line_offset,
				user_lines=user_lines,
				root=root,
			)

		try:
			return self.cache.get_or_build(key, build_fn)
		finally:
			if not self.keep_build_dirs:
				for root in roots:
					shutil.rmtree(root, ignore_errors=True)
			elif roots:
				logger.info("kept build directory %s", roots[-1])


__all__ = ["BuildOrchestrator"]
