# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""Declaration header parsing: functions, structs, impls and types."""

from __future__ import annotations

import pytest

from oxbind.parser import DeclarationSyntaxError, parse_fn_header, parse_impl_header, parse_struct, parse_type
from oxbind.parser.parser import type_names


def test_plain_function_header():
	hdr = parse_fn_header("pub fn add(a: i32, b: i32) -> i32")
	assert hdr.name == "add"
	assert hdr.is_pub
	assert [p.name for p in hdr.params] == ["a", "b"]
	assert [p.type.text for p in hdr.params] == ["i32", "i32"]
	assert hdr.ret is not None and hdr.ret.name == "i32"
	assert hdr.self_param is None
	assert hdr.generics == ()


def test_unit_function_has_no_return_type():
	hdr = parse_fn_header("fn touch()")
	assert hdr.ret is None
	assert not hdr.is_pub
	assert hdr.params == ()


def test_receivers():
	assert parse_fn_header("fn get(&self) -> i32").self_param.kind == "ref"
	assert parse_fn_header("fn bump(&mut self)").self_param.kind == "mut_ref"
	assert parse_fn_header("fn into_inner(self) -> u8").self_param.kind == "value"
	assert parse_fn_header("fn typed(self: &mut Self)").self_param.kind == "mut_ref"


def test_generics_and_where_clause():
	hdr = parse_fn_header("pub fn largest<'a, T: PartialOrd + Copy, U>(xs: &'a [T], u: U) -> T where U: Clone")
	assert [g.name for g in hdr.generics] == ["'a", "T", "U"]
	assert [g.name for g in hdr.type_params] == ["T", "U"]
	assert hdr.type_params[0].bounds == ("PartialOrd", "Copy")
	assert hdr.where[0].target == "U"
	assert hdr.where[0].bounds == ("Clone",)
	xs = hdr.params[0].type
	assert xs.kind == "ref"
	assert xs.lifetime == "'a"
	assert xs.args[0].kind == "slice"


def test_qualifiers_and_abi():
	hdr = parse_fn_header('pub unsafe extern "C" fn raw(p: *const u8) -> usize')
	assert "unsafe" in hdr.qualifiers
	assert "extern" in hdr.qualifiers
	assert hdr.abi == "C"
	assert hdr.params[0].type.kind == "ptr"
	assert not hdr.params[0].type.mutable


def test_pattern_parameters_get_positional_names():
	hdr = parse_fn_header("fn f(_: i32, (a, b): (i32, i32)) -> i32")
	assert [p.name for p in hdr.params] == ["arg0", "arg1"]
	assert hdr.params[1].type.kind == "tuple"


def test_named_struct():
	decl = parse_struct("pub struct Point { pub x: f64, pub y: f64, label: String }")
	assert decl.name == "Point"
	assert decl.shape == "named"
	assert [(f.name, f.type.text, f.is_pub) for f in decl.fields] == [
		("x", "f64", True),
		("y", "f64", True),
		("label", "String", False),
	]


def test_tuple_and_unit_structs():
	pair = parse_struct("struct Pair(pub i32, u8);")
	assert pair.shape == "tuple"
	assert [f.name for f in pair.fields] == ["0", "1"]
	unit = parse_struct("struct Marker;")
	assert unit.shape == "unit"
	assert unit.fields == ()


def test_impl_headers():
	inherent = parse_impl_header("impl Counter")
	assert inherent.trait is None
	assert inherent.target.name == "Counter"
	traited = parse_impl_header("impl<T> std::fmt::Display for Wrapper<T>")
	assert traited.trait.name == "Display"
	assert traited.target.name == "Wrapper"
	assert [g.name for g in traited.generics] == ["T"]


def test_type_paths_and_arguments():
	ty = parse_type("Result<Vec<u8>, std::io::Error>")
	assert ty.kind == "path"
	assert ty.name == "Result"
	assert [a.name for a in ty.args] == ["Vec", "Error"]
	assert ty.args[1].segments == ("std", "io", "Error")
	assert list(type_names(ty)) == ["Result", "Vec", "u8", "std", "io", "Error"]


def test_type_text_is_canonical():
	assert parse_type("Option < & 'a   str >").text == "Option<&'a str>"
	assert parse_type("&  mut  [ u8 ]").text == "&mut [u8]"


def test_unusual_types_are_classified():
	assert parse_type("dyn Fn(i32) -> i32").kind == "dyn"
	assert parse_type("impl Iterator<Item = u8>").kind == "impl"
	assert parse_type("fn(i32) -> i32").kind == "fn"
	assert parse_type("()").kind == "tuple"
	assert parse_type("[u8; 4]").kind == "array"
	assert parse_type("Iter<Item = u8>").opaque_args


def test_syntax_error_carries_location():
	with pytest.raises(DeclarationSyntaxError) as info:
		parse_fn_header("fn broken(a: i32,, b: i32)", file="lib.rs")
	assert info.value.loc.file == "lib.rs"
	assert info.value.loc.line == 1
	assert isinstance(info.value, ValueError)
