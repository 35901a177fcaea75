# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
compile_and_bind over the in-process toolchain and loader: caching, failure
reporting, dependencies, diagnostics and generic specialization.
"""

from __future__ import annotations

import ctypes
from dataclasses import replace

import pytest

from oxbind import (
	BuildFailure,
	CompilerConfig,
	CompilerContext,
	DependencyConflict,
	DiagnosticParseWarning,
	UnsupportedType,
	compile_and_bind,
	compile_file,
)
from oxbind.deps import DependencySpec
from oxbind.test_support import FakeLoader, FakeToolchain

ADD = """
#[bind]
pub fn add(a: i32, b: i32) -> i32 { a + b }
"""


def _add_env(fake_env):
	fake_env.loader.impls["add"] = lambda a, b: a + b
	return fake_env


def test_add(fake_env):
	_add_env(fake_env)
	mod = compile_and_bind(ADD, fake_env.config, context=fake_env.context)
	assert mod.add(10, 20) == 30
	assert fake_env.toolchain.invocations == 1
	(handle,) = fake_env.toolchain.handles
	assert "add" in handle.symbols


def test_same_context_reuses_the_module(fake_env):
	_add_env(fake_env)
	first = compile_and_bind(ADD, fake_env.config, context=fake_env.context)
	second = compile_and_bind(ADD, fake_env.config, context=fake_env.context)
	assert second is first
	assert fake_env.toolchain.invocations == 1
	assert fake_env.loader.loads == 1


def test_fresh_context_hits_the_disk_cache(fake_env):
	_add_env(fake_env)
	compile_and_bind(ADD, fake_env.config, context=fake_env.context)
	with fake_env.fresh_context() as other:
		mod = compile_and_bind(ADD, fake_env.config, context=other)
		assert mod.add(1, 2) == 3
	assert fake_env.toolchain.invocations == 1
	assert fake_env.loader.loads == 2


def test_changes_invalidate(fake_env):
	_add_env(fake_env)
	compile_and_bind(ADD, fake_env.config, context=fake_env.context)
	compile_and_bind(ADD + "\n// tweak\n", fake_env.config, context=fake_env.context)
	assert fake_env.toolchain.invocations == 2
	compile_and_bind(ADD, replace(fake_env.config, optimization_level=1), context=fake_env.context)
	assert fake_env.toolchain.invocations == 3


def test_generated_source_keeps_user_lines(fake_env):
	_add_env(fake_env)
	compile_and_bind(ADD, fake_env.config, context=fake_env.context)
	(lib_rs,) = fake_env.toolchain.sources
	lines = lib_rs.splitlines()
	# One prelude line, then the user source with markers blanked in place.
	assert lines[1:4] == ["", "       ", "pub fn add(a: i32, b: i32) -> i32 { a + b }"]
	assert "#[bind]" not in lib_rs
	assert '#[export_name = "add"]' in lib_rs


def test_build_failure_maps_lines(tmp_path):
	toolchain = FakeToolchain(fail=True, output="error[E0308]: mismatched types\n --> src/lib.rs:3:40\n")
	context = CompilerContext(toolchain=toolchain, loader=FakeLoader())
	config = CompilerConfig(cache_root=tmp_path / "cache")
	with pytest.raises(BuildFailure) as info:
		compile_and_bind(ADD, config, context=context)
	assert info.value.line_numbers == [2]
	assert "mismatched types" in info.value.raw_output
	# Failures are not cached.
	with pytest.raises(BuildFailure):
		compile_and_bind(ADD, config, context=context)
	assert toolchain.invocations == 2


def test_dependency_comments_reach_the_manifest(fake_env):
	source = '// deps: rand="0.8"\n' + ADD
	config = replace(fake_env.config, dependencies=(DependencySpec(name="serde", version="1", features=("derive",)),))
	_add_env(fake_env)
	compile_and_bind(source, config, context=fake_env.context)
	(handle,) = fake_env.toolchain.handles
	manifest = handle.manifest_path.read_text(encoding="utf-8")
	assert 'rand = "0.8"' in manifest
	assert "serde" in manifest
	assert "derive" in manifest
	# The declaration line is blanked, not removed.
	assert "deps:" not in fake_env.toolchain.sources[0]


def test_strict_dependencies_cover_in_source_conflicts(fake_env):
	source = '// deps: rand="0.8"\n//! ```manifest\n//! [dependencies]\n//! rand = "0.7"\n//! ```\n' + ADD
	_add_env(fake_env)
	with pytest.raises(DependencyConflict):
		compile_and_bind(source, replace(fake_env.config, strict_dependencies=True), context=fake_env.context)
	assert fake_env.toolchain.invocations == 0


def test_path_dependencies_resolve_against_base_dir(fake_env, tmp_path):
	(tmp_path / "helpers").mkdir()
	source = '// deps: helpers={path="helpers"}\n' + ADD
	_add_env(fake_env)
	compile_and_bind(source, fake_env.config, context=fake_env.context)
	manifest = fake_env.toolchain.handles[0].manifest_path.read_text(encoding="utf-8")
	helpers = (tmp_path / "helpers").resolve()
	assert f'helpers = {{ path = "{helpers}" }}' in manifest


def test_marker_misuse_warns(fake_env):
	source = ADD + "\n#[bind]\npub enum Mode { A, B }\n"
	_add_env(fake_env)
	with pytest.warns(DiagnosticParseWarning, match="E-MARKER-TARGET|enum"):
		mod = compile_and_bind(source, fake_env.config, context=fake_env.context)
	assert [d.code for d in mod.diagnostics] == ["E-MARKER-TARGET"]
	assert mod.add(1, 1) == 2


def test_strict_bindings_raise(fake_env):
	source = ADD + "\n#[bind]\npub fn pair() -> (i32, i32) { (1, 2) }\n"
	with pytest.raises(UnsupportedType) as info:
		compile_and_bind(source, replace(fake_env.config, strict_bindings=True), context=fake_env.context)
	assert info.value.item == "pair"
	assert fake_env.toolchain.invocations == 0


def test_compile_file(fake_env, tmp_path):
	path = tmp_path / "adder.rs"
	path.write_text(ADD, encoding="utf-8")
	_add_env(fake_env)
	mod = compile_file(path, replace(fake_env.config, base_dir=None), context=fake_env.context)
	assert mod.add(2, 3) == 5


GENERIC = """
#[bind]
pub struct Point { pub x: f64 }

impl Point {
	pub fn new(x: f64) -> Self { Point { x } }
}

#[bind]
pub fn identity<T: Copy>(x: T) -> T { x }

#[bind]
pub fn keep<T>(x: T) -> T { x }

#[bind]
pub fn make<T: Default>() -> T { T::default() }
"""


@pytest.fixture
def generic_mod(fake_env):
	heap = fake_env.loader.heap
	fake_env.loader.impls.update(
		{
			"identity_i64": lambda x: x,
			"identity_f64": lambda x: x,
			"identity_i32": lambda x: x,
			"keep_Point": lambda ptr: ptr,
			"make_u8": lambda: 0,
			"Point_free": heap.free,
			"Point_get_x": lambda ptr: heap.get(ptr)["x"],
			"Point_new": lambda x: heap.alloc({"x": x}),
		}
	)
	return compile_and_bind(GENERIC, fake_env.config, context=fake_env.context)


def test_generics_specialize_per_type(generic_mod, fake_env):
	assert fake_env.toolchain.invocations == 1
	assert generic_mod.identity(3) == 3
	assert generic_mod.identity(2.5) == 2.5
	assert generic_mod.identity(4) == 4
	assert sorted(i.name for i in generic_mod.identity.instances()) == ["identity_f64", "identity_i64"]
	assert fake_env.toolchain.invocations == 3
	unit = fake_env.toolchain.sources[1]
	assert "fn identity_i64(x: i64) -> i64" in unit


def test_explicit_specialization(generic_mod, fake_env):
	assert generic_mod.identity[ctypes.c_int32](7) == 7
	assert generic_mod.make[ctypes.c_uint8]() == 0
	with pytest.raises(UnsupportedType) as info:
		generic_mod.make()
	assert info.value.reason_code == "E-GENERIC-INFER"


def test_generic_instances_share_struct_classes(generic_mod, fake_env):
	p = generic_mod.Point(1.5)
	q = generic_mod.keep(p)
	assert isinstance(q, generic_mod.Point)
	assert q.x == 1.5
	# Passed by value: the original moved into Rust.
	assert p.dropped
	(inst,) = generic_mod.keep.instances()
	assert inst.name == "keep_Point"
