# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""Type inference and the per-context instance registry."""

from __future__ import annotations

import ctypes
import threading

import pytest

from oxbind.core.errors import BuildFailure, UnsupportedType
from oxbind.front.extract import extract
from oxbind.generics import GenericFunction, GenericInfo, Monomorphizer, infer_types, instance_name, specialize_signature
from oxbind.types.descriptors import OwnedString, Primitive, Slice

SOURCE = """
#[bind]
pub fn identity<T>(x: T) -> T { x }

#[bind]
pub fn largest<T: PartialOrd + Copy>(xs: &[T]) -> T { xs[0] }

#[bind]
pub fn make<T: Default>() -> T { T::default() }
"""


def _sig(name: str):
	return extract(SOURCE).function(name)


def _info(name: str, origin: str = "unit") -> GenericInfo:
	sig = _sig(name)
	start, end = sig.item_range
	return GenericInfo(signature=sig, item_text=SOURCE[start:end], base_source=SOURCE, origin=origin)


def test_inference_from_direct_parameters():
	assert infer_types(_sig("identity"), [5]) == (Primitive("i64"),)
	assert infer_types(_sig("identity"), [2.5]) == (Primitive("f64"),)
	assert infer_types(_sig("identity"), [ctypes.c_int32(5)]) == (Primitive("i32"),)
	assert infer_types(_sig("identity"), [], {"x": "s"}) == (OwnedString(),)


def test_inference_only_from_return_type_fails():
	with pytest.raises(UnsupportedType) as info:
		infer_types(_sig("make"), [])
	assert info.value.reason_code == "E-GENERIC-INFER"
	assert "make[" in info.value.hint


def test_slice_parameters_need_explicit_types():
	with pytest.raises(UnsupportedType):
		infer_types(_sig("largest"), [[1, 2]])


def test_too_many_arguments():
	with pytest.raises(TypeError):
		infer_types(_sig("identity"), [1, 2])


def test_specialize_signature():
	sig, text = specialize_signature(_info("largest"), (Primitive("u8"),))
	assert sig.name == "largest_u8"
	assert sig.params[0].type == Slice(Primitive("u8"))
	assert sig.ret == Primitive("u8")
	assert not sig.is_generic
	assert sig.item_range is None
	assert text.startswith("pub fn largest_u8(xs: &[u8]) -> u8 where u8: PartialOrd + Copy")
	assert instance_name("pair", (Primitive("i32"), OwnedString())) == "pair_i32_String"
	with pytest.raises(TypeError):
		specialize_signature(_info("largest"), ())


class RecordingBuilder:
	def __init__(self, fail: bool = False) -> None:
		self.built: list[str] = []
		self.fail = fail
		self.lock = threading.Lock()

	def __call__(self, info, sig, text):
		with self.lock:
			self.built.append(sig.name)
		if self.fail:
			raise BuildFailure(message="cargo build failed")
		return f"key-{sig.name}", lambda *args, **kw: (sig.name, args)


def test_instances_are_built_once_per_type_set():
	mono = Monomorphizer()
	mono.register(_info("identity"))
	build = RecordingBuilder()
	first = mono.instantiate("unit", "identity", (Primitive("i32"),), build)
	again = mono.instantiate("unit", "identity", (Primitive("i32"),), build)
	other = mono.instantiate("unit", "identity", (Primitive("f64"),), build)
	assert first is again
	assert first is not other
	assert build.built == ["identity_i32", "identity_f64"]
	assert {i.name for i in mono.instances("unit", "identity")} == {"identity_i32", "identity_f64"}
	assert first.key == "key-identity_i32"
	assert mono.instantiate("unit", "missing", (Primitive("i32"),), build) is None
	assert mono.instantiate("elsewhere", "identity", (Primitive("i32"),), build) is None


def test_build_failure_names_the_substitution():
	mono = Monomorphizer()
	mono.register(_info("largest"))
	with pytest.raises(BuildFailure) as info:
		mono.instantiate("unit", "largest", (Primitive("bool"),), RecordingBuilder(fail=True))
	notes = info.value.notes
	assert "while specializing `largest` with T = bool" in notes
	assert "constraints: T: PartialOrd + Copy" in notes
	assert mono.instances() == []


def test_call_infers_and_invokes():
	mono = Monomorphizer()
	mono.register(_info("identity"))
	build = RecordingBuilder()
	assert mono.call("unit", "identity", [7], {}, build) == ("identity_i64", (7,))
	assert mono.call("unit", "nothing", [7], {}, build) is None


def test_concurrent_instantiation_keeps_one_instance():
	mono = Monomorphizer()
	mono.register(_info("identity"))
	build = RecordingBuilder()
	barrier = threading.Barrier(4)
	results = []

	def worker():
		barrier.wait()
		results.append(mono.instantiate("unit", "identity", (Primitive("u16"),), build))

	threads = [threading.Thread(target=worker) for _ in range(4)]
	for t in threads:
		t.start()
	for t in threads:
		t.join()
	assert len({id(r) for r in results}) == 1
	assert len(mono.instances()) == 1


def test_generic_function_wrapper():
	mono = Monomorphizer()
	info = _info("identity")
	mono.register(info)
	build = RecordingBuilder()
	fn = GenericFunction(mono, info, build)
	assert fn(1.5) == ("identity_f64", (1.5,))
	assert fn[ctypes.c_int32](3) == ("identity_i32", (3,))
	assert fn[Primitive("u8")](3) == ("identity_u8", (3,))
	assert fn[str]("a") == ("identity_String", ("a",))
	assert len(fn.instances()) == 4
	assert repr(fn) == "<generic Rust function identity<T>>"
	assert fn.__doc__ == "fn identity<T>(x: T) -> T"
	with pytest.raises(TypeError):
		fn[int, int]
