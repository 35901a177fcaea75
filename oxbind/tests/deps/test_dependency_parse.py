# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""Dependency declarations embedded in source comments."""

from __future__ import annotations

import pytest

from oxbind.core.errors import ConfigError, DependencyConflict, DependencyConflictWarning
from oxbind.deps import DependencySpec, parse, parse_toml_dependency, strip_dependency_comments


def test_inline_declarations():
	src = """\
// deps: rand="0.8", serde={version="1", features=["derive"]}
use rand::Rng;
"""
	specs = parse(src)
	assert [s.name for s in specs] == ["rand", "serde"]
	assert specs[0].version == "0.8"
	assert specs[1].features == ("derive",)


def test_bare_names_mean_any_version():
	(spec,) = parse("// cargo-deps: itoa\n")
	assert spec == DependencySpec(name="itoa", version="*")


def test_manifest_block():
	src = """\
//! ```manifest
//! [dependencies]
//! regex = "1.10"
//! local = { path = "../local", default-features = false }
//! ```
fn main() {}
"""
	specs = {s.name: s for s in parse(src)}
	assert specs["regex"].version == "1.10"
	assert specs["local"].path == "../local"
	assert specs["local"].default_features is False
	assert specs["local"].source_kind == "path"


def test_repeated_names_are_merged():
	src = '// deps: a="1.0"\n// deps: a={version="1.0", features=["x"]}\n'
	(spec,) = parse(src)
	assert spec.version == "1.0"
	assert spec.features == ("x",)


CONFLICTING = """\
// deps: rand="0.8"
//! ```manifest
//! [dependencies]
//! rand = "0.7"
//! ```
"""


def test_conflicting_declarations_warn_by_default():
	with pytest.warns(DependencyConflictWarning):
		(spec,) = parse(CONFLICTING)
	assert spec.version == "0.8"


def test_conflicting_declarations_raise_when_strict():
	with pytest.raises(DependencyConflict) as info:
		parse(CONFLICTING, strict=True)
	assert info.value.name == "rand"


def test_malformed_inline_piece_is_skipped():
	specs = parse('// deps: good="1", bad={version=\n')
	assert [s.name for s in specs] == ["good"]


def test_no_declarations():
	assert parse("fn main() {}\n// just a comment\n") == []


def test_strip_keeps_line_numbers():
	src = """\
// deps: rand="0.8"
//! ```cargo
//! [dependencies]
//! itoa = "1"
//! ```
fn main() {}
"""
	stripped = strip_dependency_comments(src)
	assert stripped.count("\n") == src.count("\n")
	assert stripped.splitlines()[5] == "fn main() {}"
	assert "deps" not in stripped
	assert "itoa" not in stripped
	assert strip_dependency_comments("fn f() {}") == "fn f() {}"


def test_toml_values():
	git = parse_toml_dependency("lib", {"git": "https://example.com/lib.git", "tag": "v1"})
	assert git.source_kind == "git"
	assert git.tag == "v1"
	with pytest.raises(ConfigError):
		parse_toml_dependency("lib", 3)
	with pytest.raises(ConfigError):
		parse_toml_dependency("lib", {"version": "1", "features": "x"})
	with pytest.raises(ConfigError):
		parse_toml_dependency("lib", {"version": 1})


def test_manifest_rendering():
	assert DependencySpec(name="rand", version="0.8").manifest_line() == 'rand = "0.8"'
	spec = DependencySpec(name="serde", version="1", features=("derive", "alloc", "derive"))
	assert spec.manifest_line() == 'serde = { version = "1", features = ["alloc", "derive"] }'
	bare = DependencySpec(name="x", default_features=False, git="https://g/x", rev="abc")
	assert bare.manifest_value() == '{ git = "https://g/x", rev = "abc", default-features = false }'
	anyver = DependencySpec(name="y", features=("f",))
	assert anyver.manifest_value() == '{ version = "*", features = ["f"] }'
