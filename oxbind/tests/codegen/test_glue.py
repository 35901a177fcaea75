# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""Generated Rust glue."""

from __future__ import annotations

from oxbind.codegen.glue import PRELUDE, PRELUDE_LINES, render_glue, render_handle, render_shim, render_unit
from oxbind.codegen.plan import handle_plan, plan_bindings
from oxbind.front.extract import extract
from oxbind.types.descriptors import OwnedHandle, OwnershipKind, Primitive


def _plan(src: str):
	return plan_bindings(extract(src))


def test_scalar_shim():
	plan = _plan("#[bind]\npub fn add(a: i32, b: i32) -> i32 { a + b }\n")
	shim = render_shim(plan.functions[0])
	assert '#[export_name = "add"]' in shim
	assert 'pub unsafe extern "C" fn __oxbind_fn_add(a: i32, b: i32) -> i32 {' in shim
	assert "    add(a, b)" in shim


def test_string_shims():
	plan = _plan(
		"#[bind]\npub fn greet(name: &str, owned: String) -> String { format!(\"{}{}\", name, owned) }\n"
		"#[bind]\npub fn label() -> &'static str { \"x\" }\n"
	)
	greet, label = (render_shim(c) for c in plan.functions)
	assert "__name_ptr: *const u8, __name_len: usize, __owned_ptr: *const u8, __owned_len: usize" in greet
	assert "let name = __oxbind_str(__name_ptr, __name_len);" in greet
	assert "let owned = __oxbind_str(__owned_ptr, __owned_len).into_owned();" in greet
	assert "__oxbind_string_into(String::from(greet(&*name, owned)))" in greet
	assert "-> OxbindString" in label


def test_slice_and_reference_shims():
	plan = _plan(
		"#[bind]\npub fn total(xs: &[f64]) -> f64 { xs.iter().sum() }\n"
		"#[bind]\npub fn double(xs: &mut [i32]) { for x in xs.iter_mut() { *x *= 2; } }\n"
		"#[bind]\npub fn bump(x: &mut u64) { *x += 1; }\n"
	)
	total, double, bump = (render_shim(c) for c in plan.functions)
	assert "let xs = __oxbind_slice(__xs_ptr, __xs_len);" in total
	assert "__xs_ptr: *mut i32" in double
	assert "__oxbind_slice_mut" in double
	assert "x: *mut u64" in bump
	assert "bump(&mut *x);" in bump


def test_result_and_option_shims():
	plan = _plan(
		"#[bind]\npub fn parse(s: &str) -> Result<i64, String> { s.parse::<i64>().map_err(|e| e.to_string()) }\n"
		"#[bind]\npub fn first(xs: &[u8]) -> Option<char> { xs.first().map(|&b| b as char) }\n"
	)
	parse, first = (render_shim(c) for c in plan.functions)
	assert "pub struct OxbindResult_parse {" in parse
	assert "pub ok_value: i64," in parse
	assert "pub err_value: OxbindString," in parse
	assert "Err(__e) => OxbindResult_parse { is_ok: 0, ok_value: std::mem::zeroed(), err_value: __oxbind_string_into(String::from(__e)) }," in parse
	assert "pub struct OxbindOption_first {" in first
	assert "pub value: u32," in first
	assert "Some(__v) => OxbindOption_first { is_some: 1, value: (__v) as u32 }," in first


def test_struct_glue():
	src = """
#[derive(Clone, Debug, PartialEq, Default)]
#[bind]
pub struct Point { pub x: f64, pub name: String, pub tag: char }

impl Point {
	pub fn new(x: f64) -> Self { Point { x, ..Default::default() } }
	pub fn scale(&mut self, by: f64) { self.x *= by; }
	pub fn into_x(self) -> f64 { self.x }
	pub fn merged(&self, other: &Point) -> Point { self.clone() }
}
"""
	glue = render_glue(_plan(src))
	assert "pub unsafe extern \"C\" fn Point_free(ptr: *mut Point) {" in glue
	assert "pub unsafe extern \"C\" fn Point_get_x(ptr: *const Point) -> f64 {" in glue
	assert "__oxbind_string_into((*ptr).name.clone())" in glue
	assert "Point_set_name(ptr: *mut Point, __value_ptr: *const u8, __value_len: usize)" in glue
	assert "Point_set_tag(ptr: *mut Point, value: u32)" in glue
	assert "Box::into_raw(Box::new((*ptr).clone()))" in glue
	assert 'format!("{:?}", &*ptr)' in glue
	assert "Point_eq(a: *const Point, b: *const Point) -> bool" in glue
	assert "<Point as Default>::default()" in glue
	assert "fn __oxbind_fn_Point_new(x: f64) -> *mut Point {" in glue
	assert "Box::into_raw(Box::new(Point::new(x)))" in glue
	assert "Point::scale(&mut *__self, by);" in glue
	assert "Point::into_x(*Box::from_raw(__self))" in glue
	assert "Point::merged(&*__self, &*other)" in glue
	assert "fn __oxbind_string_free(s: OxbindString)" in glue


def test_handle_glue():
	rc = render_handle(handle_plan(OwnedHandle(OwnershipKind.SHARED_LOCAL, Primitive("i32"))))
	assert "__oxbind_rc_clone_i32(ptr: *const i32)" in rc
	assert "std::rc::Rc::increment_strong_count(ptr);" in rc
	assert "std::rc::Rc::decrement_strong_count(ptr);" in rc
	assert "std::rc::Rc::strong_count(&h)" in rc
	assert "__oxbind_get_rc_i32(ptr: *const i32) -> i32" in rc
	boxed = render_handle(handle_plan(OwnedHandle(OwnershipKind.UNIQUE, Primitive("u8"))))
	assert "__oxbind_box_drop_u8(ptr: *mut u8)" in boxed


def test_handle_arguments_keep_the_host_reference():
	plan = _plan("#[bind]\npub fn read(v: std::sync::Arc<i64>) -> i64 { *v }\n")
	shim = render_shim(plan.functions[0])
	assert "std::sync::Arc::increment_strong_count(v);" in shim
	assert "read(std::sync::Arc::from_raw(v))" in shim


def test_exported_functions_have_no_shim():
	plan = _plan('#[bind]\n#[no_mangle]\npub extern "C" fn raw(a: i32) -> i32 { a }\n')
	assert render_shim(plan.functions[0]) == ""
	assert "raw" in plan.symbols


def test_unit_keeps_user_lines_in_place():
	src = "#[bind]\npub fn one() -> i32 { 1 }"
	unit = render_unit(src, _plan(src), extra="pub fn one_i32() -> i32 { 1 }")
	lines = unit.splitlines()
	assert unit.startswith(PRELUDE)
	assert lines[PRELUDE_LINES + 1] == "pub fn one() -> i32 { 1 }"
	assert "pub fn one_i32() -> i32 { 1 }" in lines
	assert unit.index("one_i32") < unit.index("oxbind runtime")
