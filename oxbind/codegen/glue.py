# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Rust glue generation.

The glue is appended to the user's source in `src/lib.rs`. It never renames
or edits user items: each bound callable gets a shim

    #[export_name = "add"]
    pub unsafe extern "C" fn __oxbind_fn_add(a: i32, b: i32) -> i32 { ... }

that converts C-level arguments, calls the user item (methods through their
path, `Point::norm(&*__self)`), and converts the result. Struct destructors,
field accessors, derived-capability helpers and handle helpers are plain
`#[no_mangle]` functions named by the host conventions.
"""

from __future__ import annotations

from oxbind.front.signatures import ReceiverKind
from oxbind.types.bridge import Marshal
from oxbind.types.descriptors import (
	OpaqueStruct,
	OptionType,
	OwnedHandle,
	OwnershipKind,
	Pointer,
	Primitive,
	ResultType,
	Slice,
	TypeDescriptor,
)

from .plan import BindingPlan, CallPlan, FieldPlan, HandlePlan, StructPlan

# Bumped whenever generated code changes shape; part of every cache key.
GLUE_VERSION = "1"

PRELUDE = "#![allow(unused, dead_code, non_snake_case, non_camel_case_types, improper_ctypes_definitions)]\n"
PRELUDE_LINES = PRELUDE.count("\n")

RUNTIME = """
// ---- oxbind runtime ----
#[repr(C)]
pub struct OxbindString {
    pub ptr: *mut u8,
    pub len: usize,
    pub cap: usize,
}

fn __oxbind_string_into(s: String) -> OxbindString {
    let mut s = std::mem::ManuallyDrop::new(s);
    OxbindString { ptr: s.as_mut_ptr(), len: s.len(), cap: s.capacity() }
}

#[no_mangle]
pub unsafe extern "C" fn __oxbind_string_free(s: OxbindString) {
    if !s.ptr.is_null() {
        drop(String::from_raw_parts(s.ptr, s.len, s.cap));
    }
}

unsafe fn __oxbind_str<'a>(ptr: *const u8, len: usize) -> std::borrow::Cow<'a, str> {
    if ptr.is_null() || len == 0 {
        return std::borrow::Cow::Borrowed("");
    }
    String::from_utf8_lossy(std::slice::from_raw_parts(ptr, len))
}

unsafe fn __oxbind_slice<'a, T>(ptr: *const T, len: usize) -> &'a [T] {
    if ptr.is_null() || len == 0 {
        return std::slice::from_raw_parts(std::ptr::NonNull::<T>::dangling().as_ptr(), 0);
    }
    std::slice::from_raw_parts(ptr, len)
}

unsafe fn __oxbind_slice_mut<'a, T>(ptr: *mut T, len: usize) -> &'a mut [T] {
    if ptr.is_null() || len == 0 {
        return std::slice::from_raw_parts_mut(std::ptr::NonNull::<T>::dangling().as_ptr(), 0);
    }
    std::slice::from_raw_parts_mut(ptr, len)
}
"""

_RC_PATHS = {
	OwnershipKind.SHARED_LOCAL: "std::rc::Rc",
	OwnershipKind.SHARED_ATOMIC: "std::sync::Arc",
}


def _handle_c_type(desc: OwnedHandle) -> str:
	if desc.kind is OwnershipKind.UNIQUE:
		return f"*mut {desc.inner.rust()}"
	return f"*const {desc.inner.rust()}"


def c_type(desc: TypeDescriptor, marshal: Marshal) -> str:
	"""Rust type of a single C-level value."""
	if marshal is Marshal.DIRECT:
		return desc.rust()
	if marshal is Marshal.CHAR:
		return "u32"
	if marshal is Marshal.UNIT:
		return "u8"
	if marshal is Marshal.STR:
		return "OxbindString"
	if marshal is Marshal.STRUCT_VALUE:
		return f"*mut {desc.rust()}"
	if marshal is Marshal.HANDLE and isinstance(desc, OwnedHandle):
		return _handle_c_type(desc)
	raise ValueError(f"no single C type for {marshal.value} `{desc.rust()}`")


def _into_c(desc: TypeDescriptor, marshal: Marshal, expr: str) -> str:
	"""Expression converting a Rust value to its C-level form."""
	if marshal is Marshal.DIRECT:
		return expr
	if marshal is Marshal.CHAR:
		return f"({expr}) as u32"
	if marshal is Marshal.UNIT:
		return "0"
	if marshal is Marshal.STR:
		return f"__oxbind_string_into(String::from({expr}))"
	if marshal is Marshal.STRUCT_VALUE:
		return f"Box::into_raw(Box::new({expr}))"
	if marshal is Marshal.HANDLE and isinstance(desc, OwnedHandle):
		if desc.kind is OwnershipKind.UNIQUE:
			return f"Box::into_raw({expr})"
		return f"{_RC_PATHS[desc.kind]}::into_raw({expr})"
	raise ValueError(f"cannot convert {marshal.value} `{desc.rust()}`")


def _param(name: str, desc: TypeDescriptor, marshal: Marshal) -> tuple[list[str], list[str], str]:
	"""(C parameter declarations, setup statements, call expression)."""
	if marshal is Marshal.DIRECT:
		return [f"{name}: {desc.rust()}"], [], name
	if marshal is Marshal.CHAR:
		return [f"{name}: u32"], [], f"char::from_u32({name}).unwrap_or('\\u{{FFFD}}')"
	if marshal is Marshal.STR:
		decls = [f"__{name}_ptr: *const u8", f"__{name}_len: usize"]
		raw = f"__oxbind_str(__{name}_ptr, __{name}_len)"
		if isinstance(desc, Pointer) and desc.to == Primitive("str"):
			return decls, [f"let {name} = {raw};"], f"&*{name}"
		setup = [f"let {name} = {raw}.into_owned();"]
		if isinstance(desc, Pointer):
			return decls, setup, f"&{name}"
		return decls, setup, name
	if marshal is Marshal.SLICE and isinstance(desc, Slice):
		elem = desc.elem.rust()
		if desc.mutable:
			decls = [f"__{name}_ptr: *mut {elem}", f"__{name}_len: usize"]
			return decls, [f"let {name} = __oxbind_slice_mut(__{name}_ptr, __{name}_len);"], name
		decls = [f"__{name}_ptr: *const {elem}", f"__{name}_len: usize"]
		return decls, [f"let {name} = __oxbind_slice(__{name}_ptr, __{name}_len);"], name
	if marshal in (Marshal.SCALAR_REF, Marshal.STRUCT_REF) and isinstance(desc, Pointer):
		if desc.mutable:
			return [f"{name}: *mut {desc.to.rust()}"], [], f"&mut *{name}"
		return [f"{name}: *const {desc.to.rust()}"], [], f"&*{name}"
	if marshal is Marshal.STRUCT_VALUE:
		return [f"{name}: *mut {desc.rust()}"], [], f"*Box::from_raw({name})"
	if marshal is Marshal.HANDLE and isinstance(desc, OwnedHandle):
		if desc.kind is OwnershipKind.UNIQUE:
			return [f"{name}: *mut {desc.inner.rust()}"], [], f"Box::from_raw({name})"
		path = _RC_PATHS[desc.kind]
		# The host keeps its own reference; Rust gets a new one.
		return (
			[f"{name}: *const {desc.inner.rust()}"],
			[f"{path}::increment_strong_count({name});"],
			f"{path}::from_raw({name})",
		)
	raise ValueError(f"cannot pass {marshal.value} `{desc.rust()}`")


def tagged_struct_name(call: CallPlan) -> str:
	prefix = "OxbindResult" if call.ret_marshal is Marshal.RESULT else "OxbindOption"
	return f"{prefix}_{call.symbol}"


def _tagged_struct(call: CallPlan) -> str:
	name = tagged_struct_name(call)
	ret = call.ret
	if isinstance(ret, ResultType):
		ok_m, err_m = call.payload
		return (
			f"#[repr(C)]\npub struct {name} {{\n"
			f"    pub is_ok: u8,\n"
			f"    pub ok_value: {c_type(ret.ok, ok_m)},\n"
			f"    pub err_value: {c_type(ret.err, err_m)},\n"
			f"}}\n"
		)
	assert isinstance(ret, OptionType)
	(inner_m,) = call.payload
	return f"#[repr(C)]\npub struct {name} {{\n    pub is_some: u8,\n    pub value: {c_type(ret.inner, inner_m)},\n}}\n"


def _return(call: CallPlan, expr: str) -> tuple[str | None, list[str]]:
	"""(C return type, body lines) for the call expression `expr`."""
	m = call.ret_marshal
	ret = call.ret
	if m is Marshal.UNIT:
		return None, [f"{expr};"]
	if m in (Marshal.DIRECT, Marshal.CHAR, Marshal.STR, Marshal.STRUCT_VALUE, Marshal.HANDLE):
		return c_type(ret, m), [_into_c(ret, m, expr)]
	name = tagged_struct_name(call)
	if m is Marshal.RESULT and isinstance(ret, ResultType):
		ok_m, err_m = call.payload
		return name, [
			f"match {expr} {{",
			f"    Ok(__v) => {name} {{ is_ok: 1, ok_value: {_into_c(ret.ok, ok_m, '__v')}, err_value: std::mem::zeroed() }},",
			f"    Err(__e) => {name} {{ is_ok: 0, ok_value: std::mem::zeroed(), err_value: {_into_c(ret.err, err_m, '__e')} }},",
			"}",
		]
	if m is Marshal.OPTION and isinstance(ret, OptionType):
		(inner_m,) = call.payload
		return name, [
			f"match {expr} {{",
			f"    Some(__v) => {name} {{ is_some: 1, value: {_into_c(ret.inner, inner_m, '__v')} }},",
			f"    None => {name} {{ is_some: 0, value: std::mem::zeroed() }},",
			"}",
		]
	raise ValueError(f"cannot return {m.value} `{ret.rust()}`")


def render_shim(call: CallPlan) -> str:
	"""The exported wrapper for one callable (empty for already-exported functions)."""
	if not call.needs_shim:
		return ""
	sig = call.signature
	decls: list[str] = []
	setup: list[str] = []
	exprs: list[str] = []
	owner = sig.owner
	if sig.receiver is ReceiverKind.REF:
		decls.append(f"__self: *const {owner}")
		exprs.append("&*__self")
	elif sig.receiver is ReceiverKind.MUT_REF:
		decls.append(f"__self: *mut {owner}")
		exprs.append("&mut *__self")
	elif sig.receiver is ReceiverKind.VALUE:
		decls.append(f"__self: *mut {owner}")
		exprs.append("*Box::from_raw(__self)")
	for arg in call.args:
		d, s, e = _param(arg.name, arg.type, arg.marshal)
		decls.extend(d)
		setup.extend(s)
		exprs.append(e)
	target = sig.name if owner is None else f"{owner}::{sig.name}"
	call_expr = f"{target}({', '.join(exprs)})"
	ret_type, body = _return(call, call_expr)
	out: list[str] = []
	if call.ret_marshal in (Marshal.RESULT, Marshal.OPTION):
		out.append(_tagged_struct(call))
	arrow = f" -> {ret_type}" if ret_type else ""
	out.append(f'#[export_name = "{call.symbol}"]')
	out.append(f"pub unsafe extern \"C\" fn __oxbind_fn_{call.symbol}({', '.join(decls)}){arrow} {{")
	out.extend(f"    {line}" for line in setup)
	out.extend(f"    {line}" for line in body)
	out.append("}")
	return "\n".join(out) + "\n"


def _extern(name: str, params: str, ret: str | None, body: str) -> str:
	arrow = f" -> {ret}" if ret else ""
	return f"#[no_mangle]\npub unsafe extern \"C\" fn {name}({params}){arrow} {{\n    {body}\n}}\n"


def _field_accessors(s: StructPlan, f: FieldPlan) -> list[str]:
	name = s.name
	out: list[str] = []
	if f.getter:
		if f.marshal is Marshal.STR:
			out.append(_extern(f.getter, f"ptr: *const {name}", "OxbindString", f"__oxbind_string_into((*ptr).{f.name}.clone())"))
		else:
			out.append(_extern(f.getter, f"ptr: *const {name}", c_type(f.type, f.marshal), _into_c(f.type, f.marshal, f"(*ptr).{f.name}")))
	if f.setter:
		if f.marshal is Marshal.STR:
			params = f"ptr: *mut {name}, __value_ptr: *const u8, __value_len: usize"
			body = f"(*ptr).{f.name} = __oxbind_str(__value_ptr, __value_len).into_owned();"
		elif f.marshal is Marshal.CHAR:
			params = f"ptr: *mut {name}, value: u32"
			body = f"(*ptr).{f.name} = char::from_u32(value).unwrap_or('\\u{{FFFD}}');"
		else:
			params = f"ptr: *mut {name}, value: {f.type.rust()}"
			body = f"(*ptr).{f.name} = value;"
		out.append(_extern(f.setter, params, None, body))
	return out


def render_struct(s: StructPlan) -> str:
	name = s.name
	out = [f"// ---- {name} ----", _extern(s.free_symbol, f"ptr: *mut {name}", None, "if !ptr.is_null() { drop(Box::from_raw(ptr)); }")]
	for f in s.fields:
		out.extend(_field_accessors(s, f))
	helpers = s.helpers
	if "Clone" in helpers:
		out.append(_extern(helpers["Clone"], f"ptr: *const {name}", f"*mut {name}", "Box::into_raw(Box::new((*ptr).clone()))"))
	if "Debug" in helpers:
		out.append(_extern(helpers["Debug"], f"ptr: *const {name}", "OxbindString", '__oxbind_string_into(format!("{:?}", &*ptr))'))
	if "Display" in helpers:
		out.append(_extern(helpers["Display"], f"ptr: *const {name}", "OxbindString", '__oxbind_string_into(format!("{}", &*ptr))'))
	if "PartialEq" in helpers:
		out.append(_extern(helpers["PartialEq"], f"a: *const {name}, b: *const {name}", "bool", "*a == *b"))
	if "Default" in helpers:
		out.append(_extern(helpers["Default"], "", f"*mut {name}", f"Box::into_raw(Box::new(<{name} as Default>::default()))"))
	for m in s.methods:
		shim = render_shim(m)
		if shim:
			out.append(shim)
	return "\n".join(out)


def render_handle(h: HandlePlan) -> str:
	desc = h.type
	inner = desc.inner.rust()
	out: list[str] = []
	if desc.kind is OwnershipKind.UNIQUE:
		if isinstance(desc.inner, OpaqueStruct):
			# Boxed structs share the struct destructor.
			return ""
		out.append(_extern(h.drop, f"ptr: *mut {inner}", None, "if !ptr.is_null() { drop(Box::from_raw(ptr)); }"))
	else:
		path = _RC_PATHS[desc.kind]
		if h.clone:
			out.append(_extern(h.clone, f"ptr: *const {inner}", None, f"{path}::increment_strong_count(ptr);"))
		out.append(_extern(h.drop, f"ptr: *const {inner}", None, f"{path}::decrement_strong_count(ptr);"))
		if h.count:
			out.append(
				_extern(
					h.count,
					f"ptr: *const {inner}",
					"usize",
					f"let h = std::mem::ManuallyDrop::new({path}::from_raw(ptr)); {path}::strong_count(&h)",
				)
			)
	if h.get:
		out.append(_extern(h.get, f"ptr: *const {inner}", inner, "*ptr"))
	return "\n".join(out)


def render_glue(plan: BindingPlan) -> str:
	"""All generated Rust for `plan`."""
	parts = [RUNTIME]
	for call in plan.functions:
		shim = render_shim(call)
		if shim:
			parts.append(shim)
	for s in plan.structs:
		parts.append(render_struct(s))
	for h in plan.handles:
		text = render_handle(h)
		if text:
			parts.append(text)
	return "\n".join(parts)


def render_unit(user_source: str, plan: BindingPlan, *, extra: str = "") -> str:
	"""The complete `src/lib.rs`: prelude, user source (positions intact), extras, glue."""
	body = user_source if user_source.endswith("\n") else user_source + "\n"
	if extra:
		body += "\n" + extra + ("" if extra.endswith("\n") else "\n")
	return PRELUDE + body + "\n" + render_glue(plan)


__all__ = [
	"GLUE_VERSION",
	"PRELUDE",
	"PRELUDE_LINES",
	"c_type",
	"render_glue",
	"render_handle",
	"render_shim",
	"render_struct",
	"render_unit",
	"tagged_struct_name",
]
