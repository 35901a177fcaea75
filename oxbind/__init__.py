# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
oxbind: call Rust from Python.

Mark Rust functions, structs and impl blocks with `#[bind]` and hand the
source to `compile_and_bind`:

    mod = compile_and_bind('''
        #[bind]
        pub fn add(a: i32, b: i32) -> i32 { a + b }
    ''')
    mod.add(10, 20)  # 30

The source is compiled with cargo into a shared library (cached by content
hash) and its exports are wrapped as Python callables and classes.
"""

from __future__ import annotations

from .bindings import ForeignStruct, HostModule, OwnedValue
from .compiler import compile_and_bind, compile_file
from .config import CompilerConfig, config_from_env, load_config
from .context import CompilerContext
from .core.errors import (
	BuildFailure,
	CacheIntegrityMismatch,
	ConfigError,
	DependencyConflict,
	DependencyConflictWarning,
	DiagnosticParseWarning,
	ForeignError,
	OxbindError,
	UnsupportedType,
	UseAfterDrop,
)
from .core.logging import configure_logging
from .types import ForeignOption, ForeignResult

__all__ = [
	"BuildFailure",
	"CacheIntegrityMismatch",
	"CompilerConfig",
	"CompilerContext",
	"ConfigError",
	"DependencyConflict",
	"DependencyConflictWarning",
	"DiagnosticParseWarning",
	"ForeignError",
	"ForeignOption",
	"ForeignResult",
	"ForeignStruct",
	"HostModule",
	"OwnedValue",
	"OxbindError",
	"UnsupportedType",
	"UseAfterDrop",
	"compile_and_bind",
	"compile_file",
	"config_from_env",
	"configure_logging",
	"load_config",
]
