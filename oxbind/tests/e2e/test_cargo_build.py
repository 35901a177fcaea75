# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""Real builds: cargo compiles the crate and ctypes loads it."""

from __future__ import annotations

import ctypes
import shutil

import pytest

from oxbind import BuildFailure, CompilerConfig, CompilerContext, UseAfterDrop, compile_and_bind

pytestmark = pytest.mark.skipif(shutil.which("cargo") is None, reason="cargo is not installed")

SOURCE = """
use std::sync::Arc;

#[bind]
pub fn add(a: i32, b: i32) -> i32 { a + b }

#[bind]
pub fn greet(name: &str) -> String { format!("hello {}", name) }

#[bind]
pub fn total(xs: &[f64]) -> f64 { xs.iter().sum() }

#[bind]
pub fn double_all(xs: &mut [i32]) { for x in xs.iter_mut() { *x *= 2; } }

#[bind]
pub fn parse_num(text: &str) -> Result<i32, String> { text.trim().parse::<i32>().map_err(|e| e.to_string()) }

#[bind]
pub fn first_even(xs: &[i64]) -> Option<i64> { xs.iter().copied().find(|x| x % 2 == 0) }

#[derive(Clone, Debug, PartialEq, Default)]
#[bind]
pub struct Point { pub x: f64, pub y: f64 }

impl Point {
	pub fn new(x: f64, y: f64) -> Self { Point { x, y } }
	pub fn norm(&self) -> f64 { (self.x * self.x + self.y * self.y).sqrt() }
	pub fn scale(&mut self, by: f64) { self.x *= by; self.y *= by; }
}

#[bind]
pub fn shared(x: f64) -> Arc<Point> { Arc::new(Point::new(x, x)) }

#[bind]
pub fn identity<T: Copy>(x: T) -> T { x }

#[bind]
pub fn plus<T: std::ops::Add<Output = T> + Copy>(a: T, b: T) -> T { a + b }
"""


@pytest.fixture(scope="module")
def env(tmp_path_factory):
	root = tmp_path_factory.mktemp("cargo")
	config = CompilerConfig(cache_root=root / "cache", build_root=root / "build", optimization_level=0)
	context = CompilerContext()
	yield config, context
	context.close()


@pytest.fixture(scope="module")
def mod(env):
	config, context = env
	return compile_and_bind(SOURCE, config, context=context)


def test_functions(mod):
	assert mod.add(10, 20) == 30
	assert mod.greet("rust") == "hello rust"
	assert mod.total([0.5, 1.5, 2.0]) == 4.0
	xs = [1, 2, 3]
	mod.double_all(xs)
	assert xs == [2, 4, 6]


def test_result_and_option(mod):
	assert mod.parse_num(" 12 ").unwrap() == 12
	assert "invalid digit" in mod.parse_num("x").unwrap_err()
	assert mod.first_even([1, 3, 8]).unwrap() == 8
	assert mod.first_even([1]).is_none()


def test_structs(mod):
	p = mod.Point(3.0, 4.0)
	assert p.norm() == 5.0
	p.scale(2.0)
	assert (p.x, p.y) == (6.0, 8.0)
	q = p.clone()
	assert q == p
	assert repr(q) == "Point { x: 6.0, y: 8.0 }"
	assert mod.Point.default() == mod.Point(0.0, 0.0)
	p.drop()
	with pytest.raises(UseAfterDrop):
		p.norm()


def test_shared_structs(mod):
	a = mod.shared(1.0)
	b = a.clone()
	assert a.strong_count() == 2
	b.drop()
	assert a.strong_count() == 1
	assert a.x == 1.0


def test_generics(mod):
	assert mod.identity(5) == 5
	assert mod.identity(1.25) == 1.25
	assert mod.identity[ctypes.c_uint8](255) == 255
	assert len(mod.identity.instances()) == 3


def test_generics_with_associated_type_bounds(mod):
	assert mod.plus(2, 3) == 5
	assert mod.plus(0.5, 0.25) == 0.75


def test_second_context_uses_the_cache(env):
	config, _ = env
	with CompilerContext() as other:
		again = compile_and_bind(SOURCE, config, context=other)
		assert again.add(1, 2) == 3


def test_compile_errors_point_at_user_lines(env):
	config, context = env
	source = "\n#[bind]\npub fn broken() -> i32 { \"nope\" }\n"
	with pytest.raises(BuildFailure) as info:
		compile_and_bind(source, config, context=context)
	assert 3 in info.value.line_numbers
