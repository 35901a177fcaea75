# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Foreign toolchain interface.

`Toolchain.build(handle) -> Artifact` is the only thing the orchestrator
needs; `CargoToolchain` runs `cargo build --release` as a blocking
subprocess. Failures become `BuildFailure` with the raw output, the
file/line references rustc printed and heuristic fix suggestions.
"""

from __future__ import annotations

import os
import re
import shutil
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Protocol

from oxbind.core.errors import BuildFailure, SourceRef
from oxbind.core.hashing import file_sha256
from oxbind.core.logging import get_logger

from .project import ProjectHandle

logger = get_logger("build")


@dataclass(frozen=True)
class Artifact:
	"""A compiled shared library and the symbols it is expected to export."""

	path: Path
	checksum: str
	symbols: tuple[str, ...] = ()
	from_cache: bool = False

	@classmethod
	def from_file(cls, path: Path, symbols: Iterable[str] = ()) -> "Artifact":
		return cls(path=path, checksum=f"sha256:{file_sha256(path)}", symbols=tuple(symbols))


class Toolchain(Protocol):
	def build(self, handle: ProjectHandle) -> Artifact: ...


_ARROW_RE = re.compile(r"-->\s*(?P<file>[^\s:][^:\n]*?):(?P<line>\d+):(?P<col>\d+)")
_SHORT_RE = re.compile(r"^(?P<file>[\w./\\-]+\.rs):(?P<line>\d+):(?P<col>\d+):", re.MULTILINE)
_HELP_RE = re.compile(r"^\s*(?:=\s*)?help:\s*(?P<text>.+?)\s*$", re.MULTILINE)

# (pattern in lower-cased output, suggestion)
_FIX_TABLE: tuple[tuple[str, str], ...] = (
	("expected `;`", "missing semicolon: add `;` at the end of the statement"),
	("unclosed delimiter", "mismatched braces: check that every `{` has a matching `}`"),
	("expected `)`", "mismatched parentheses: check that every `(` has a matching `)`"),
	("mismatched types", "type mismatch: check that argument and return types match the signature"),
	("cannot add", "add a trait bound to the generic parameter, e.g. `T: std::ops::Add<Output = T>`"),
	("cannot multiply", "add a trait bound to the generic parameter, e.g. `T: std::ops::Mul<Output = T>`"),
	("cannot subtract", "add a trait bound to the generic parameter, e.g. `T: std::ops::Sub<Output = T>`"),
	("binary operation", "the operator is not defined for this type; add a trait bound or convert first"),
	("unresolved import", "declare the crate with `// deps: name=\"version\"` or fix the `use` path"),
	("can't find crate", "declare the crate with `// deps: name=\"version\"`"),
	("no matching package named", "check the dependency name and version constraint"),
	("cannot borrow", "borrow checker error: pass references or clone the value"),
	("does not live long enough", "return owned values (String, Box<T>) across the boundary"),
	("use of moved value", "the value was moved; clone it or take a reference"),
	("linker `cc` not found", "install a C linker (e.g. build-essential or the Xcode command line tools)"),
	("could not find `cargo.toml`", "the project directory is incomplete; rebuild with keep_build_dirs to inspect it"),
)


def extract_line_refs(output: str, handle: ProjectHandle | None = None) -> list[SourceRef]:
	"""Collect `file:line:col` references printed by rustc, in order."""
	refs: list[SourceRef] = []
	seen: set[tuple[str, int, int]] = set()
	matches = sorted(list(_ARROW_RE.finditer(output)) + list(_SHORT_RE.finditer(output)), key=lambda m: m.start())
	for m in matches:
		file = m.group("file").strip()
		line = int(m.group("line"))
		col = int(m.group("col"))
		key = (file, line, col)
		if key in seen:
			continue
		seen.add(key)
		user_line = None
		if handle is not None and file.replace("\\", "/").endswith("src/lib.rs"):
			user_line = handle.user_line(line)
		refs.append(SourceRef(file=file, line=line, column=col, user_line=user_line))
	return refs


def suggest_fixes(output: str) -> list[str]:
	"""`help:` lines from rustc plus suggestions for well-known error patterns."""
	out: list[str] = []
	for m in _HELP_RE.finditer(output):
		text = m.group("text")
		if text not in out:
			out.append(text)
	low = output.lower()
	for pattern, suggestion in _FIX_TABLE:
		if pattern in low and suggestion not in out:
			out.append(suggestion)
	return out


def failure_from_output(
	message: str,
	output: str,
	*,
	exit_code: int | None,
	handle: ProjectHandle,
) -> BuildFailure:
	refs = extract_line_refs(output, handle)
	notes = []
	for ref in refs:
		if ref.user_line is not None:
			notes.append(f"{ref.file}:{ref.line} is line {ref.user_line} of the bound source")
	return BuildFailure(
		message=message,
		raw_output=output,
		exit_code=exit_code,
		refs=refs,
		suggestions=suggest_fixes(output),
		project_dir=str(handle.root),
		notes=notes,
	)


class CargoToolchain:
	"""Builds projects with `cargo build --release`."""

	def __init__(self, cargo: str = "cargo", *, env: Iterable[tuple[str, str]] = ()) -> None:
		self.cargo = cargo
		self.env = tuple(env)

	def _resolve(self) -> str:
		exe = shutil.which(self.cargo)
		if exe is None:
			raise BuildFailure(
				message=f"cargo executable `{self.cargo}` was not found",
				hint="install Rust (https://rustup.rs) or point OXBIND_CARGO at cargo",
			)
		return exe

	def build(self, handle: ProjectHandle) -> Artifact:
		exe = self._resolve()
		args = [exe, "build"]
		if handle.release:
			args.append("--release")
		env = dict(os.environ)
		env.update(self.env)
		env.update(handle.env)
		logger.info("building %s (%s)", handle.name, handle.root)
		started = time.monotonic()
		try:
			res = subprocess.run(args, cwd=handle.root, capture_output=True, text=True, env=env)
		except OSError as err:
			raise BuildFailure(message=f"failed to run {exe}: {err}", project_dir=str(handle.root)) from err
		elapsed = time.monotonic() - started
		output = (res.stdout or "") + (res.stderr or "")
		if res.returncode != 0:
			logger.info("build of %s failed after %.2fs (exit %d)", handle.name, elapsed, res.returncode)
			raise failure_from_output(
				f"cargo build failed with exit code {res.returncode}",
				output,
				exit_code=res.returncode,
				handle=handle,
			)
		logger.info("built %s in %.2fs", handle.name, elapsed)
		path = handle.artifact_path
		if not path.exists():
			raise BuildFailure(
				message=f"cargo reported success but {path.name} was not produced",
				raw_output=output,
				exit_code=res.returncode,
				project_dir=str(handle.root),
			)
		return Artifact.from_file(path, handle.symbols)


__all__ = ["Artifact", "CargoToolchain", "Toolchain", "extract_line_refs", "failure_from_output", "suggest_fixes"]
