# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Compiler configuration.

`CompilerConfig` is an immutable value; derive variants with
`dataclasses.replace`. Configuration can be loaded from `oxbind.toml`
(top-level keys) or from the `[tool.oxbind]` table of a `pyproject.toml`, and
overridden from the environment.
"""

from __future__ import annotations

import os
import platform
import sys
import tomllib
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Mapping

from oxbind.core.errors import ConfigError
from oxbind.deps.parse import parse_toml_dependency
from oxbind.deps.spec import DependencySpec

CONFIG_FILE_NAME = "oxbind.toml"
_EDITIONS = ("2015", "2018", "2021")


def default_cache_root() -> Path:
	"""`$OXBIND_CACHE_DIR`, else `$XDG_CACHE_HOME/oxbind`, else `~/.cache/oxbind`."""
	env = os.environ.get("OXBIND_CACHE_DIR")
	if env:
		return Path(env).expanduser()
	xdg = os.environ.get("XDG_CACHE_HOME")
	if xdg:
		return Path(xdg).expanduser() / "oxbind"
	return Path.home() / ".cache" / "oxbind"


def host_triple() -> str:
	"""Best-effort description of the host target; only used as a cache-key input."""
	machine = platform.machine().lower() or "unknown"
	if sys.platform.startswith("linux"):
		return f"{machine}-unknown-linux-gnu"
	if sys.platform == "darwin":
		arch = "aarch64" if machine in ("arm64", "aarch64") else machine
		return f"{arch}-apple-darwin"
	if sys.platform.startswith("win"):
		return f"{machine}-pc-windows-msvc"
	return f"{machine}-unknown-{sys.platform}"


@dataclass(frozen=True)
class CompilerConfig:
	"""Settings for one compile_and_bind call."""

	optimization_level: int = 3
	debug_info: bool = False
	lto: bool = False
	release: bool = True
	edition: str = "2021"
	target_triple: str = field(default_factory=host_triple)
	# Attribute name that marks a declaration for binding: #[bind].
	marker: str = "bind"
	cargo: str = "cargo"
	cache_root: Path | None = None
	build_root: Path | None = None
	keep_build_dirs: bool = False
	strict_dependencies: bool = False
	strict_bindings: bool = False
	# Retry a failed build once at opt-level 0 with debug info.
	recovery: bool = False
	dependencies: tuple[DependencySpec, ...] = ()
	env: tuple[tuple[str, str], ...] = ()
	# Base directory for relative `path` dependencies.
	base_dir: Path | None = None

	def __post_init__(self) -> None:
		if not isinstance(self.optimization_level, int) or not 0 <= self.optimization_level <= 3:
			raise ConfigError(message=f"optimization_level must be 0-3, got {self.optimization_level!r}", key="optimization_level")
		if self.edition not in _EDITIONS:
			raise ConfigError(message=f"unsupported edition {self.edition!r}", key="edition")
		if not self.marker.isidentifier():
			raise ConfigError(message=f"marker must be an identifier, got {self.marker!r}", key="marker")

	@property
	def resolved_cache_root(self) -> Path:
		return self.cache_root if self.cache_root is not None else default_cache_root()

	def fingerprint(self) -> dict[str, Any]:
		"""Build-affecting settings, fed into the cache key."""
		return {
			"optimization_level": self.optimization_level,
			"debug_info": self.debug_info,
			"lto": self.lto,
			"release": self.release,
			"edition": self.edition,
			"target_triple": self.target_triple,
		}

	def recovery_variant(self) -> "CompilerConfig":
		return replace(self, optimization_level=0, debug_info=True, lto=False)


def _expect(data: Mapping[str, Any], key: str, typ: type | tuple[type, ...]) -> Any:
	val = data[key]
	if isinstance(val, bool) and typ is int:
		raise ConfigError(message=f"`{key}` must be an integer", key=key)
	if not isinstance(val, typ):
		raise ConfigError(message=f"`{key}` has the wrong type ({type(val).__name__})", key=key)
	return val


def config_from_mapping(data: Mapping[str, Any], *, root: Path | None = None) -> CompilerConfig:
	"""Build a config from an already-parsed TOML table."""
	kwargs: dict[str, Any] = {}
	for key in ("optimization_level",):
		if key in data:
			kwargs[key] = _expect(data, key, int)
	for key in ("debug_info", "lto", "release", "keep_build_dirs", "strict_dependencies", "strict_bindings", "recovery"):
		if key in data:
			kwargs[key] = _expect(data, key, bool)
	for key in ("edition", "target_triple", "marker", "cargo"):
		if key in data:
			kwargs[key] = str(_expect(data, key, (str, int)))
	for key in ("cache_root", "build_root"):
		if key in data:
			p = Path(_expect(data, key, str)).expanduser()
			kwargs[key] = p if p.is_absolute() or root is None else root / p
	if "dependencies" in data:
		table = _expect(data, "dependencies", dict)
		kwargs["dependencies"] = tuple(parse_toml_dependency(name, val) for name, val in table.items())
	if "env" in data:
		table = _expect(data, "env", dict)
		kwargs["env"] = tuple(sorted((str(k), str(v)) for k, v in table.items()))
	unknown = set(data) - set(kwargs)
	if unknown:
		raise ConfigError(message=f"unknown configuration keys: {', '.join(sorted(unknown))}")
	if root is not None:
		kwargs["base_dir"] = root
	return CompilerConfig(**kwargs)


def load_config(config_path: Path) -> CompilerConfig:
	"""
	Load configuration from disk.

	`config_path` may name `oxbind.toml`, a `pyproject.toml`, or a directory
	containing either (oxbind.toml wins). A missing file yields defaults.
	"""
	config_path = config_path.expanduser()
	if config_path.is_dir():
		candidates = [config_path / CONFIG_FILE_NAME, config_path / "pyproject.toml"]
		config_path = next((c for c in candidates if c.exists()), candidates[0])
	root = config_path.parent.resolve()
	if not config_path.exists():
		return CompilerConfig(base_dir=root)
	try:
		doc = tomllib.loads(config_path.read_text(encoding="utf-8"))
	except tomllib.TOMLDecodeError as err:
		raise ConfigError(message=f"failed to parse {config_path.name}: {err}") from err
	if config_path.name == "pyproject.toml":
		doc = doc.get("tool", {}).get("oxbind", {})
	if not isinstance(doc, dict):
		raise ConfigError(message=f"{config_path.name}: oxbind settings must be a table")
	return config_from_mapping(doc, root=root)


def _env_flag(raw: str, key: str) -> bool:
	low = raw.strip().lower()
	if low in ("1", "true", "yes", "on"):
		return True
	if low in ("0", "false", "no", "off", ""):
		return False
	raise ConfigError(message=f"{key} must be a boolean flag, got {raw!r}", key=key)


def config_from_env(base: CompilerConfig | None = None, environ: Mapping[str, str] | None = None) -> CompilerConfig:
	"""Apply OXBIND_* environment overrides on top of `base`."""
	cfg = base or CompilerConfig()
	env = os.environ if environ is None else environ
	changes: dict[str, Any] = {}
	if env.get("OXBIND_CACHE_DIR"):
		changes["cache_root"] = Path(env["OXBIND_CACHE_DIR"]).expanduser()
	if env.get("OXBIND_CARGO"):
		changes["cargo"] = env["OXBIND_CARGO"]
	if "OXBIND_STRICT_DEPS" in env:
		changes["strict_dependencies"] = _env_flag(env["OXBIND_STRICT_DEPS"], "OXBIND_STRICT_DEPS")
	if "OXBIND_KEEP_BUILD" in env:
		changes["keep_build_dirs"] = _env_flag(env["OXBIND_KEEP_BUILD"], "OXBIND_KEEP_BUILD")
	return replace(cfg, **changes) if changes else cfg


__all__ = ["CompilerConfig", "config_from_env", "config_from_mapping", "default_cache_root", "host_triple", "load_config"]
