# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""Struct classes, owned handles and the host module mapping."""

from __future__ import annotations

import copy
import gc

import pytest

from oxbind import ForeignStruct, OwnedValue, UnsupportedType, UseAfterDrop, compile_and_bind
from oxbind.types.descriptors import OwnershipKind

SOURCE = """
use std::rc::Rc;
use std::sync::Arc;

#[derive(Clone, Debug, PartialEq)]
#[bind]
pub struct Point { pub x: f64, pub y: f64 }

impl Point {
	pub fn new(x: f64, y: f64) -> Self { Point { x, y } }
	pub fn norm(&self) -> f64 { (self.x * self.x + self.y * self.y).sqrt() }
	pub fn translate(&mut self, dx: f64, dy: f64) { self.x += dx; self.y += dy; }
	pub fn into_sum(self) -> f64 { self.x + self.y }
	pub fn coords(&self) -> Vec<f64> { vec![self.x, self.y] }
}

#[derive(Default)]
#[bind]
pub struct Counter { pub hits: u32, pub name: String, pub initial: char }

impl Counter {
	pub fn hit(&mut self) -> u32 { self.hits += 1; self.hits }
}

#[bind]
pub fn distance(a: &Point, b: &Point) -> f64 { ((a.x - b.x).powi(2) + (a.y - b.y).powi(2)).sqrt() }

#[bind]
pub fn consume(p: Point) -> f64 { p.x }

#[bind]
pub fn boxed_point(x: f64) -> Box<Point> { Box::new(Point::new(x, x)) }

#[bind]
pub fn shared_origin() -> Arc<Point> { Arc::new(Point::new(0.0, 0.0)) }

#[bind]
pub fn shared_norm(p: Arc<Point>) -> f64 { p.norm() }

#[bind]
pub fn counter(start: i32) -> Rc<i32> { Rc::new(start) }

#[bind]
pub fn boxed(v: i64) -> Box<i64> { Box::new(v) }

#[bind]
pub fn unbox(b: Box<i64>) -> i64 { *b }

#[bind]
pub fn pair() -> (i32, i32) { (1, 2) }
"""


def _impls(heap):
	"""Rust-side behaviour over the fake heap. Rc/Arc strong counts live beside it."""
	strong: dict[int, int] = {}

	def point_new(x, y):
		return heap.alloc({"x": x, "y": y})

	def point_translate(ptr, dx, dy):
		p = heap.get(ptr)
		p["x"] += dx
		p["y"] += dy

	def point_into_sum(ptr):
		p = heap.free(ptr)
		return p["x"] + p["y"]

	def point_set(field):
		def setter(ptr, value):
			heap.get(ptr)[field] = value

		return setter

	def shared_new(value):
		ptr = heap.alloc(value)
		strong[ptr] = 1
		return ptr

	def shared_clone(ptr):
		heap.get(ptr)
		strong[ptr] += 1

	def shared_drop(ptr):
		strong[ptr] -= 1
		if strong[ptr] == 0:
			del strong[ptr]
			heap.free(ptr)

	def counter_hit(ptr):
		c = heap.get(ptr)
		c["hits"] += 1
		return c["hits"]

	def counter_set_name(ptr, data, n):
		heap.get(ptr)["name"] = data[:n].decode("utf-8")

	def unbox(ptr):
		return heap.free(ptr)

	def consume(ptr):
		return heap.free(ptr)["x"]

	return {
		"Point_new": point_new,
		"Point_norm": lambda ptr: (heap.get(ptr)["x"] ** 2 + heap.get(ptr)["y"] ** 2) ** 0.5,
		"Point_translate": point_translate,
		"Point_into_sum": point_into_sum,
		"Point_get_x": lambda ptr: heap.get(ptr)["x"],
		"Point_get_y": lambda ptr: heap.get(ptr)["y"],
		"Point_set_x": point_set("x"),
		"Point_set_y": point_set("y"),
		"Point_free": heap.free,
		"Point_clone": lambda ptr: heap.alloc(dict(heap.get(ptr))),
		"Point_debug": lambda ptr: "Point {{ x: {x}, y: {y} }}".format(**heap.get(ptr)),
		"Point_eq": lambda a, b: heap.get(a) == heap.get(b),
		"Counter_default": lambda: heap.alloc({"hits": 0, "name": "", "initial": ord("a")}),
		"Counter_hit": counter_hit,
		"Counter_get_hits": lambda ptr: heap.get(ptr)["hits"],
		"Counter_get_name": lambda ptr: heap.get(ptr)["name"],
		"Counter_set_name": counter_set_name,
		"Counter_get_initial": lambda ptr: heap.get(ptr)["initial"],
		"Counter_free": heap.free,
		"distance": lambda a, b: ((heap.get(a)["x"] - heap.get(b)["x"]) ** 2 + (heap.get(a)["y"] - heap.get(b)["y"]) ** 2) ** 0.5,
		"consume": consume,
		"boxed_point": lambda x: point_new(x, x),
		"shared_origin": lambda: shared_new({"x": 0.0, "y": 0.0}),
		"shared_norm": lambda ptr: 0.0,
		"__oxbind_arc_clone_Point": shared_clone,
		"__oxbind_arc_drop_Point": shared_drop,
		"__oxbind_arc_count_Point": strong.__getitem__,
		"counter": shared_new,
		"__oxbind_get_rc_i32": heap.get,
		"__oxbind_rc_clone_i32": shared_clone,
		"__oxbind_rc_drop_i32": shared_drop,
		"__oxbind_rc_count_i32": strong.__getitem__,
		"boxed": heap.alloc,
		"unbox": unbox,
		"__oxbind_get_box_i64": heap.get,
		"__oxbind_box_drop_i64": heap.free,
	}


@pytest.fixture
def mod(fake_env):
	fake_env.loader.impls.update(_impls(fake_env.loader.heap))
	return compile_and_bind(SOURCE, fake_env.config, context=fake_env.context)


def test_module_mapping(mod):
	assert set(mod) == {
		"Point",
		"Counter",
		"distance",
		"consume",
		"boxed_point",
		"shared_origin",
		"shared_norm",
		"counter",
		"boxed",
		"unbox",
	}
	assert len(mod) == 10
	assert "pair" not in mod
	assert mod["distance"] is mod.distance
	assert "Point" in dir(mod)
	assert mod.name.startswith("ox_")
	assert "Point_free" in mod.symbols
	assert mod.artifact is not None


def test_rejected_declarations_explain_themselves(mod):
	assert set(mod.rejected) == {"pair"}
	with pytest.raises(UnsupportedType) as info:
		mod["pair"]
	assert info.value.item == "pair"
	with pytest.raises(UnsupportedType):
		mod.pair
	with pytest.raises(KeyError):
		mod["missing"]
	with pytest.raises(AttributeError, match="no member 'missing'"):
		mod.missing
	p = mod.Point(1.0, 2.0)
	with pytest.raises(UnsupportedType) as info:
		p.coords
	assert info.value.item == "Point::coords"


def test_struct_fields_and_methods(mod, fake_env):
	p = mod.Point(3.0, 4.0)
	assert isinstance(p, ForeignStruct)
	assert p.ownership is OwnershipKind.UNIQUE
	assert (p.x, p.y) == (3.0, 4.0)
	assert p.norm() == 5.0
	p.translate(1.0, dy=-1.0)
	assert (p.x, p.y) == (4.0, 3.0)
	p.x = 10
	assert p.x == 10.0
	with pytest.raises(TypeError):
		p.y = "up"
	assert mod.distance(mod.Point(0.0, 0.0), p) == pytest.approx((100 + 9) ** 0.5)
	assert fake_env.loader.library.called("Point_set_x") == [(p._pointer, 10.0)]


def test_derived_capabilities(mod, fake_env):
	a = mod.Point(1.0, 2.0)
	b = a.clone()
	assert b is not a
	assert b._pointer != a._pointer
	assert a == b
	b.x = 5.0
	assert a != b
	assert a.x == 1.0
	assert copy.copy(a) == a
	assert repr(a) == "Point { x: 1.0, y: 2.0 }"
	assert str(a) == repr(a)
	with pytest.raises(TypeError):
		hash(a)
	assert "Point { x: 1.0, y: 2.0 }" in fake_env.loader.library.freed_strings


def test_default_constructor_and_string_fields(mod):
	c = mod.Counter()
	assert c.hits == 0
	assert c.hit() == 1
	assert c.hit() == 2
	assert c.hits == 2
	c.name = "requests"
	assert c.name == "requests"
	with pytest.raises(TypeError, match="expected str"):
		c.name = 3
	assert c.initial == "a"
	assert isinstance(mod.Counter.default(), mod.Counter)
	with pytest.raises(TypeError, match="Clone"):
		c.clone()


def test_drop_and_use_after_drop(mod, fake_env):
	heap = fake_env.loader.heap
	p = mod.Point(1.0, 1.0)
	ptr = p._pointer
	assert p.drop() is True
	assert p.dropped
	assert ptr in heap.freed
	assert p.drop() is False
	assert repr(p) == "<Point dropped>"
	with pytest.raises(UseAfterDrop):
		p.x
	with pytest.raises(UseAfterDrop):
		p.norm()
	with pytest.raises(UseAfterDrop):
		mod.distance(p, p)


def test_with_block_drops(mod, fake_env):
	with mod.Point(2.0, 2.0) as p:
		assert p.norm() == pytest.approx(8**0.5)
	assert p.dropped
	assert heap_empty(fake_env)


def test_consuming_calls_move_the_value(mod, fake_env):
	p = mod.Point(1.5, 2.5)
	assert p.into_sum() == 4.0
	assert p.dropped
	with pytest.raises(UseAfterDrop):
		p.into_sum()
	q = mod.Point(7.0, 0.0)
	assert mod.consume(q) == 7.0
	assert q.dropped
	# Moved values are not freed a second time.
	assert fake_env.context.close() == 0
	assert heap_empty(fake_env)


def test_invalid_arguments_do_not_move(mod):
	p = mod.Point(1.0, 1.0)
	with pytest.raises(TypeError, match="expected Point"):
		mod.consume("not a point")
	with pytest.raises(TypeError):
		mod.unbox(p)
	assert not p.dropped


def test_boxed_struct_is_a_plain_instance(mod):
	p = mod.boxed_point(2.0)
	assert isinstance(p, mod.Point)
	assert p.ownership is OwnershipKind.UNIQUE
	assert p.y == 2.0


def test_arc_structs_are_shared(mod, fake_env):
	origin = mod.shared_origin()
	assert isinstance(origin, mod.Point)
	assert origin.is_shared
	assert origin.strong_count() == 1
	other = origin.clone()
	assert origin.strong_count() == 2
	assert origin.x == 0.0
	with pytest.raises(TypeError, match="shared"):
		origin.translate(1.0, 1.0)
	with pytest.raises(TypeError, match="shared"):
		origin.x = 3.0
	assert mod.shared_norm(other) == 0.0
	# Arc arguments are borrowed for the call; the host keeps its reference.
	assert not other.dropped
	other.drop()
	assert origin.strong_count() == 1
	origin.drop()
	assert heap_empty(fake_env)


def test_rc_values(mod, fake_env):
	rc = mod.counter(5)
	assert isinstance(rc, OwnedValue)
	assert rc.ownership is OwnershipKind.SHARED_LOCAL
	assert rc.get() == 5
	assert rc.value == 5
	assert repr(rc) == "std::rc::Rc<i32>(5)"
	second = rc.clone()
	assert rc.strong_count() == 2
	rc.drop()
	assert second.strong_count() == 1
	with pytest.raises(UseAfterDrop):
		rc.get()
	second.drop()
	assert heap_empty(fake_env)


def test_box_values_move_into_rust(mod, fake_env):
	b = mod.boxed(41)
	assert b.ownership is OwnershipKind.UNIQUE
	assert b.get() == 41
	assert mod.unbox(b) == 41
	assert b.dropped
	with pytest.raises(UseAfterDrop):
		mod.unbox(b)
	with pytest.raises(TypeError, match="Box<i64>"):
		mod.unbox(41)
	assert heap_empty(fake_env)


def test_unreferenced_objects_are_finalized(mod, fake_env):
	p = mod.Point(1.0, 2.0)
	ptr = p._pointer
	del p
	gc.collect()
	assert ptr in fake_env.loader.heap.freed


def test_drop_all_releases_live_values(mod, fake_env):
	keep = [mod.Point(float(i), 0.0) for i in range(3)]
	rc = mod.counter(1)
	assert mod.drop_all() == 4
	assert all(p.dropped for p in keep)
	assert rc.dropped
	assert heap_empty(fake_env)


def heap_empty(env):
	return env.loader.heap.live() == 0
