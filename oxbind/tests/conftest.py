# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import pytest

from oxbind.config import CompilerConfig
from oxbind.context import CompilerContext
from oxbind.test_support import FakeLoader, FakeToolchain


@dataclass
class FakeEnv:
	config: CompilerConfig
	context: CompilerContext
	toolchain: FakeToolchain
	loader: FakeLoader

	def fresh_context(self) -> CompilerContext:
		"""A second context sharing the toolchain, loader and on-disk cache."""
		return CompilerContext(toolchain=self.toolchain, loader=self.loader)


@pytest.fixture
def fake_env(tmp_path: Path) -> FakeEnv:
	toolchain = FakeToolchain()
	loader = FakeLoader()
	config = CompilerConfig(
		cache_root=tmp_path / "cache",
		build_root=tmp_path / "build",
		keep_build_dirs=True,
		base_dir=tmp_path,
	)
	context = CompilerContext(toolchain=toolchain, loader=loader)
	yield FakeEnv(config=config, context=context, toolchain=toolchain, loader=loader)
	context.close()
