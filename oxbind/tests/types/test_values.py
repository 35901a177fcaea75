# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
from __future__ import annotations

import ctypes

import pytest

from oxbind.core.errors import ForeignError
from oxbind.types.values import ForeignOption, ForeignResult, OxbindString, option_struct, result_struct


def test_result_accessors():
	ok = ForeignResult.from_ok(5)
	err = ForeignResult.from_err("bad input")
	assert ok.is_ok() and not ok.is_err()
	assert ok.unwrap() == 5
	assert err.unwrap_err() == "bad input"
	assert err.unwrap_or(0) == 0
	assert err.unwrap_or_else(len) == 9
	assert repr(ok) == "Ok(5)"
	assert repr(err) == "Err('bad input')"
	assert ok.ok().unwrap() == 5
	assert err.ok().is_none()
	assert err.err().unwrap() == "bad input"
	with pytest.raises(ForeignError) as info:
		err.unwrap()
	assert info.value.value == "bad input"
	with pytest.raises(ForeignError, match="parsing"):
		err.expect("parsing")
	with pytest.raises(ForeignError):
		ok.unwrap_err()


def test_option_accessors():
	some = ForeignOption.from_value(0)
	none = ForeignOption.empty()
	assert some and not none
	assert some.unwrap() == 0
	assert none.unwrap_or(7) == 7
	assert repr(some) == "Some(0)"
	assert repr(none) == "None"
	with pytest.raises(ForeignError):
		none.unwrap()
	with pytest.raises(ForeignError, match="needed a value"):
		none.expect("needed a value")


def test_tagged_layouts_are_cached():
	a = result_struct(ctypes.c_int64, OxbindString)
	assert a is result_struct(ctypes.c_int64, OxbindString)
	assert [f[0] for f in a._fields_] == ["is_ok", "ok_value", "err_value"]
	opt = option_struct(ctypes.c_double)
	assert [f[0] for f in opt._fields_] == ["is_some", "value"]
	assert opt().is_some == 0


def test_string_decode():
	assert OxbindString().decode() == ""
	buf = ctypes.create_string_buffer("héllo".encode("utf-8"))
	s = OxbindString(ctypes.addressof(buf), len("héllo".encode("utf-8")), 0)
	assert s.decode() == "héllo"
