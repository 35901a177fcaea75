# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Cargo project materialization.

A project is a directory holding `Cargo.toml` and `src/lib.rs`. The library
is always a `cdylib`; its artifact path is derived from the crate name and the
platform's shared-library naming convention.
"""

from __future__ import annotations

import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable

from oxbind.config import CompilerConfig
from oxbind.deps.spec import DependencySpec

MANIFEST_NAME = "Cargo.toml"
SOURCE_REL = Path("src") / "lib.rs"


def library_filename(name: str, platform: str | None = None) -> str:
	"""Shared library file name cargo produces for crate `name`."""
	plat = platform or sys.platform
	if plat.startswith("win"):
		return f"{name}.dll"
	if plat == "darwin":
		return f"lib{name}.dylib"
	return f"lib{name}.so"


@dataclass(frozen=True)
class ProjectHandle:
	"""
	A materialized cargo project.

	`line_offset` is the number of generated lines in front of the user's
	source in `src/lib.rs` and `user_lines` the number of user lines, so
	toolchain line numbers can be mapped back.
	"""

	name: str
	root: Path
	dependencies: tuple[DependencySpec, ...] = ()
	symbols: tuple[str, ...] = ()
	release: bool = True
	line_offset: int = 0
	user_lines: int = 0
	env: tuple[tuple[str, str], ...] = field(default_factory=tuple)

	@property
	def manifest_path(self) -> Path:
		return self.root / MANIFEST_NAME

	@property
	def source_path(self) -> Path:
		return self.root / SOURCE_REL

	@property
	def profile_dir(self) -> str:
		return "release" if self.release else "debug"

	@property
	def artifact_path(self) -> Path:
		return self.root / "target" / self.profile_dir / library_filename(self.name)

	def user_line(self, line: int) -> int | None:
		"""Map a `src/lib.rs` line to the user's source line, if it is one."""
		mapped = line - self.line_offset
		if 1 <= mapped <= self.user_lines:
			return mapped
		return None


def render_manifest(name: str, deps: Iterable[DependencySpec], config: CompilerConfig) -> str:
	"""Render `Cargo.toml` for a binding crate."""
	lines = [
		"[package]",
		f'name = "{name}"',
		'version = "0.1.0"',
		f'edition = "{config.edition}"',
		"publish = false",
		"",
		"[lib]",
		f'name = "{name}"',
		'crate-type = ["cdylib"]',
		'path = "src/lib.rs"',
		"",
		"[dependencies]",
	]
	for dep in sorted(deps, key=lambda d: d.name):
		lines.append(dep.manifest_line())
	profile = "release" if config.release else "dev"
	lines.extend(
		[
			"",
			f"[profile.{profile}]",
			f"opt-level = {config.optimization_level}",
			f"debug = {'true' if config.debug_info else 'false'}",
			f"lto = {'true' if config.lto else 'false'}",
			"",
			# Keeps the crate out of any enclosing cargo workspace.
			"[workspace]",
			"",
		]
	)
	return "\n".join(lines)


def materialize(
	name: str,
	deps: Iterable[DependencySpec],
	source: str,
	*,
	root: Path,
	config: CompilerConfig,
	symbols: Iterable[str] = (),
	line_offset: int = 0,
	user_lines: int = 0,
) -> ProjectHandle:
	"""Write `Cargo.toml` and `src/lib.rs` under `root`."""
	deps = tuple(deps)
	root.mkdir(parents=True, exist_ok=True)
	(root / "src").mkdir(exist_ok=True)
	(root / MANIFEST_NAME).write_text(render_manifest(name, deps, config), encoding="utf-8")
	(root / SOURCE_REL).write_text(source, encoding="utf-8")
	return ProjectHandle(
		name=name,
		root=root,
		dependencies=deps,
		symbols=tuple(symbols),
		release=config.release,
		line_offset=line_offset,
		user_lines=user_lines,
		env=config.env,
	)


__all__ = ["MANIFEST_NAME", "ProjectHandle", "library_filename", "materialize", "render_manifest"]
