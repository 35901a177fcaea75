# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""Argument and return marshalling of bound free functions."""

from __future__ import annotations

import ctypes
import inspect

import pytest

from oxbind import ForeignError, compile_and_bind

SOURCE = """
#[bind]
pub fn add(a: i32, b: i32) -> i32 { a + b }

#[bind]
pub fn scale(x: f64, by: f32) -> f64 { x * by as f64 }

#[bind]
pub fn is_even(n: u8) -> bool { n % 2 == 0 }

#[bind]
pub fn next_char(c: char) -> char { char::from_u32(c as u32 + 1).unwrap_or(c) }

#[bind]
pub fn greet(name: &str) -> String { format!("hello {}", name) }

#[bind]
pub fn total(xs: &[i64]) -> i64 { xs.iter().sum() }

#[bind]
pub fn double_all(xs: &mut [i32]) { for x in xs.iter_mut() { *x *= 2; } }

#[bind]
pub fn checksum(data: &[u8]) -> u32 { data.iter().map(|b| *b as u32).sum() }

#[bind]
pub fn bump(counter: &mut u64) { *counter += 1; }

#[bind]
pub fn parse_num(text: &str) -> Result<i32, String> { text.parse().map_err(|e| format!("{}", e)) }

#[bind]
pub fn find(xs: &[i32], target: i32) -> Option<usize> { xs.iter().position(|x| *x == target) }
"""


def _text(data, n):
	return data[:n].decode("utf-8")


def _parse_num(data, n):
	text = _text(data, n)
	if text.lstrip("-").isdigit():
		return (True, int(text))
	return (False, "invalid digit found in string")


def _find(p, n, target):
	for i in range(n):
		if p[i] == target:
			return i
	return None


def _double_all(p, n):
	for i in range(n):
		p[i] *= 2


def _bump(ref):
	ref._obj.value += 1


IMPLS = {
	"add": lambda a, b: a + b,
	"scale": lambda x, by: x * by,
	"is_even": lambda n: n % 2 == 0,
	"next_char": lambda c: c + 1,
	"greet": lambda data, n: f"hello {_text(data, n)}",
	"total": lambda p, n: sum(p[i] for i in range(n)),
	"double_all": _double_all,
	"checksum": lambda p, n: sum(p[i] for i in range(n)),
	"bump": _bump,
	"parse_num": _parse_num,
	"find": _find,
}


@pytest.fixture
def mod(fake_env):
	fake_env.loader.impls.update(IMPLS)
	return compile_and_bind(SOURCE, fake_env.config, context=fake_env.context)


def test_integers_are_range_checked_before_the_call(mod, fake_env):
	assert mod.add(10, 20) == 30
	assert mod.add(a=1, b=2) == 3
	with pytest.raises(OverflowError, match="i32"):
		mod.add(2**31, 0)
	with pytest.raises(OverflowError):
		mod.add(-(2**31) - 1, 0)
	with pytest.raises(TypeError, match=r"add\(a\)"):
		mod.add("1", 2)
	with pytest.raises(TypeError):
		mod.add(1.5, 2)
	assert fake_env.loader.library.called("add") == [(10, 20), (1, 2)]


def test_arity_errors_name_the_function(mod):
	with pytest.raises(TypeError, match=r"^add\(\)"):
		mod.add(1)
	with pytest.raises(TypeError):
		mod.add(1, 2, 3)


def test_floats_and_bools(mod):
	assert mod.scale(2, 1.5) == 3.0
	assert mod.scale(ctypes.c_double(4.0), 0.5) == 2.0
	with pytest.raises(TypeError, match="float"):
		mod.scale("2", 1.0)
	assert mod.is_even(4) is True
	assert mod.is_even(3) is False
	with pytest.raises(OverflowError):
		mod.is_even(256)


def test_chars_cross_as_code_points(mod):
	assert mod.next_char("a") == "b"
	assert mod.next_char(0x41) == "B"
	with pytest.raises(TypeError, match="single character"):
		mod.next_char("ab")
	with pytest.raises(ValueError, match="Unicode scalar"):
		mod.next_char(0xD800)


def test_returned_strings_are_freed(mod, fake_env):
	assert mod.greet("wörld") == "hello wörld"
	lib = fake_env.loader.library
	assert lib.freed_strings == ["hello wörld"]
	assert lib.live_strings == 0
	(args,) = lib.called("greet")
	assert args == ("wörld".encode("utf-8"), len("wörld".encode("utf-8")))
	with pytest.raises(TypeError, match="expected str"):
		mod.greet(3)


def test_slices_accept_sequences(mod):
	assert mod.total([1, 2, 3]) == 6
	assert mod.total((4, 5)) == 9
	assert mod.total([]) == 0
	assert mod.total(range(4)) == 6
	with pytest.raises(TypeError, match="sequence"):
		mod.total("abc")
	with pytest.raises(TypeError, match=r"total\(xs\)\[1\]"):
		mod.total([1, "x"])


def test_byte_slices_take_buffers(mod):
	assert mod.checksum(b"\x01\x02\x03") == 6
	assert mod.checksum(bytearray(b"\x10\x10")) == 32
	assert mod.checksum([255, 1]) == 256
	with pytest.raises(OverflowError):
		mod.checksum([256])


def test_mutable_slices_write_back(mod):
	xs = [1, 2, 3]
	assert mod.double_all(xs) is None
	assert xs == [2, 4, 6]
	arr = (ctypes.c_int32 * 2)(5, 6)
	mod.double_all(arr)
	assert list(arr) == [10, 12]
	with pytest.raises(TypeError, match="list to write back"):
		mod.double_all((1, 2))


def test_failed_validation_leaves_list_untouched(mod, fake_env):
	xs = [1, 2**40]
	with pytest.raises(OverflowError):
		mod.double_all(xs)
	assert xs == [1, 2**40]
	assert fake_env.loader.library.called("double_all") == []


def test_scalar_references(mod):
	cell = ctypes.c_uint64(41)
	mod.bump(cell)
	assert cell.value == 42
	with pytest.raises(TypeError, match="instance"):
		mod.bump(41)


def test_result_values(mod, fake_env):
	ok = mod.parse_num("42")
	assert ok.is_ok()
	assert ok.unwrap() == 42
	err = mod.parse_num("x")
	assert err.is_err()
	assert err.unwrap_err() == "invalid digit found in string"
	assert repr(err) == "Err('invalid digit found in string')"
	with pytest.raises(ForeignError, match="unwrap"):
		err.unwrap()
	assert err.unwrap_or(0) == 0
	# The Err string was handed back to Rust.
	assert fake_env.loader.library.freed_strings == ["invalid digit found in string"]


def test_option_values(mod):
	hit = mod.find([3, 5, 7], 5)
	assert hit.is_some()
	assert hit.unwrap() == 1
	miss = mod.find([3], 9)
	assert miss.is_none()
	assert not miss
	assert repr(miss) == "None"
	with pytest.raises(ForeignError):
		miss.unwrap()


def test_bound_function_metadata(mod):
	add = mod.add
	assert add.__name__ == "add"
	assert list(inspect.signature(add).parameters) == ["a", "b"]
	assert add.__doc__ == "fn add(a: i32, b: i32) -> i32"
	assert repr(add) == "<bound Rust function add>"
	types = add.host_types()
	assert types["a"].name == "int32"
	assert types["return"].kind == "int"
	assert mod.greet.host_types()["return"].kind == "str"
