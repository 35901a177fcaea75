# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""Binding plans: per-declaration marshalling and rejection."""

from __future__ import annotations

import pytest

from oxbind.codegen.plan import extend_plan, handle_plan, plan_bindings, plan_call
from oxbind.core.errors import UnsupportedType
from oxbind.front.extract import extract
from oxbind.types.bridge import Marshal, TypeBridge
from oxbind.types.descriptors import OpaqueStruct, OwnedHandle, OwnershipKind, Primitive

SOURCE = """
#[derive(Clone, Debug, PartialEq)]
#[bind]
pub struct Point { pub x: f64, pub y: f64 }

impl Point {
	pub fn new(x: f64, y: f64) -> Self { Point { x, y } }
	pub fn norm(&self) -> f64 { (self.x * self.x + self.y * self.y).sqrt() }
	pub fn get_y(&self) -> f64 { self.y }
}

#[bind]
pub struct Bad { pub items: Vec<i32> }

#[bind]
pub fn add(a: i32, b: i32) -> i32 { a + b }

#[bind]
pub fn pair() -> (i32, i32) { (1, 2) }

#[bind]
pub fn takes_bad(b: &Bad) -> i32 { 0 }

#[bind]
pub fn boxed(x: f64) -> Box<Point> { Box::new(Point::new(x, x)) }

#[bind]
pub fn counter() -> std::rc::Rc<i32> { std::rc::Rc::new(0) }

#[bind]
pub fn identity<T>(x: T) -> T { x }
"""


def test_rejections_are_per_declaration():
	plan = plan_bindings(extract(SOURCE))
	assert [f.name for f in plan.functions] == ["add", "boxed", "counter"]
	assert set(plan.rejected) == {"Bad", "pair", "takes_bad"}
	assert [g.name for g in plan.generics] == ["identity"]
	assert plan.known_structs == frozenset({"Point"})
	bad = plan.rejected["Bad"]
	assert bad.item == "Bad"
	assert bad.field == "items"
	assert any("not bound" in n for n in bad.notes)
	assert plan.rejected["takes_bad"].field == "b"


def test_strict_planning_raises_first_problem():
	with pytest.raises(UnsupportedType):
		plan_bindings(extract(SOURCE), strict=True)


def test_struct_plan():
	plan = plan_bindings(extract(SOURCE))
	point = plan.struct("Point")
	assert point.free_symbol == "Point_free"
	assert point.helpers == {"Clone": "Point_clone", "Debug": "Point_debug", "PartialEq": "Point_eq"}
	fields = {f.name: f for f in point.fields}
	assert fields["x"].getter == "Point_get_x"
	assert fields["x"].setter == "Point_set_x"
	assert fields["y"].getter is None
	assert [m.symbol for m in point.methods] == ["Point_new", "Point_norm", "Point_get_y"]


def test_symbols_cover_everything_exported():
	plan = plan_bindings(extract(SOURCE))
	symbols = plan.symbols
	assert symbols[0] == "__oxbind_string_free"
	for sym in ("add", "Point_new", "Point_free", "Point_get_x", "Point_set_y", "Point_clone", "__oxbind_rc_clone_i32", "__oxbind_get_rc_i32"):
		assert sym in symbols
	assert len(symbols) == len(set(symbols))


def test_handle_plans():
	boxed = handle_plan(OwnedHandle(OwnershipKind.UNIQUE, Primitive("u8")))
	assert (boxed.drop, boxed.clone, boxed.get) == ("__oxbind_box_drop_u8", None, "__oxbind_get_box_u8")
	boxed_struct = handle_plan(OwnedHandle(OwnershipKind.UNIQUE, OpaqueStruct("Point")))
	assert (boxed_struct.drop, boxed_struct.get) == ("Point_free", None)
	arc = handle_plan(OwnedHandle(OwnershipKind.SHARED_ATOMIC, OpaqueStruct("Point")))
	assert (arc.drop, arc.clone, arc.count) == ("__oxbind_arc_drop_Point", "__oxbind_arc_clone_Point", "__oxbind_arc_count_Point")


def test_exported_functions_must_be_direct():
	src = """
#[bind]
#[no_mangle]
pub extern "C" fn raw(s: &str) -> i32 { 0 }
"""
	plan = plan_bindings(extract(src))
	assert "raw" in plan.rejected
	assert "shim" in plan.rejected["raw"].hint


def test_method_named_free_is_rejected():
	src = """
#[bind]
pub struct S { pub a: u8 }
impl S {
	pub fn free(&self) {}
}
"""
	plan = plan_bindings(extract(src))
	assert "S.free" in plan.rejected
	assert plan.struct("S").methods == ()


def test_extend_plan_adds_calls_and_handles():
	plan = plan_bindings(extract(SOURCE))
	sig = extract("#[bind]\npub fn shared(v: u16) -> std::sync::Arc<u16> { std::sync::Arc::new(v) }\n").functions[0]
	call = plan_call(sig, TypeBridge(plan.known_structs), symbol="shared_u16")
	extended = extend_plan(plan, [call])
	assert extended.functions[-1].symbol == "shared_u16"
	assert call.ret_marshal is Marshal.HANDLE
	assert "__oxbind_arc_drop_u16" in extended.symbols
	assert len(extended.handles) == len(plan.handles) + 1
