# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Binding plans.

A plan records, for every bound callable, struct field and handle type, the
exported symbol and how each value crosses the boundary. The Rust glue and
the host wrappers are both generated from the same plan, so they cannot
disagree about a signature.

Planning is where unsupported types are rejected: each rejection is stored
per declaration and does not affect the others. A struct with one unsupported
field is rejected as a whole, and so is everything that mentions it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Iterator, Optional

from oxbind.core.errors import UnsupportedType
from oxbind.front.signatures import Extraction, ReceiverKind, Signature, StructDescriptor
from oxbind.types.bridge import Marshal, TypeBridge
from oxbind.types.descriptors import (
	OpaqueStruct,
	OptionType,
	OwnedHandle,
	ResultType,
	TypeDescriptor,
)

# Capability -> helper suffix, emitted as `{Struct}_{suffix}`.
CAPABILITY_HELPERS = {
	"Clone": "clone",
	"Debug": "debug",
	"PartialEq": "eq",
	"Default": "default",
	"Display": "display",
}


@dataclass(frozen=True)
class ArgPlan:
	name: str
	type: TypeDescriptor
	marshal: Marshal


@dataclass(frozen=True)
class CallPlan:
	"""One exported callable."""

	signature: Signature
	symbol: str
	args: tuple[ArgPlan, ...]
	ret: TypeDescriptor
	ret_marshal: Marshal
	# Marshal of the Ok/Err payloads, or of the Some payload.
	payload: tuple[Marshal, ...] = ()

	@property
	def name(self) -> str:
		return self.signature.name

	@property
	def receiver(self) -> ReceiverKind:
		return self.signature.receiver

	@property
	def owner(self) -> Optional[str]:
		return self.signature.owner

	@property
	def needs_shim(self) -> bool:
		return not self.signature.exported


@dataclass(frozen=True)
class FieldPlan:
	name: str
	type: TypeDescriptor
	marshal: Marshal
	getter: Optional[str]
	setter: Optional[str]


@dataclass(frozen=True)
class StructPlan:
	struct: StructDescriptor
	fields: tuple[FieldPlan, ...]
	methods: tuple[CallPlan, ...]
	# Capability name -> exported helper symbol.
	helpers: dict[str, str] = field(default_factory=dict)

	@property
	def name(self) -> str:
		return self.struct.name

	@property
	def free_symbol(self) -> str:
		return f"{self.struct.name}_free"


@dataclass(frozen=True)
class HandlePlan:
	"""Helpers for one `Box<T>` / `Rc<T>` / `Arc<T>` type."""

	type: OwnedHandle
	drop: str
	clone: Optional[str] = None
	count: Optional[str] = None
	get: Optional[str] = None


def handle_plan(desc: OwnedHandle) -> HandlePlan:
	inner = desc.inner
	if isinstance(inner, OpaqueStruct):
		drop = f"{inner.name}_free"
		get = None
	else:
		drop = f"__oxbind_{desc.helper_prefix}_drop_{inner.tag()}"
		get = f"__oxbind_get_{desc.tag()}"
	if desc.kind.is_shared:
		tag = inner.tag()
		return HandlePlan(
			type=desc,
			drop=f"__oxbind_{desc.helper_prefix}_drop_{tag}",
			clone=f"__oxbind_{desc.helper_prefix}_clone_{tag}",
			count=f"__oxbind_{desc.helper_prefix}_count_{tag}",
			get=get,
		)
	return HandlePlan(type=desc, drop=drop, get=get)


@dataclass(frozen=True)
class BindingPlan:
	functions: tuple[CallPlan, ...] = ()
	structs: tuple[StructPlan, ...] = ()
	handles: tuple[HandlePlan, ...] = ()
	# Generic functions, specialized on demand.
	generics: tuple[Signature, ...] = ()
	# Declaration name ("f" or "Point.method") -> why it was not bound.
	rejected: dict[str, UnsupportedType] = field(default_factory=dict)

	def struct(self, name: str) -> Optional[StructPlan]:
		for s in self.structs:
			if s.name == name:
				return s
		return None

	@property
	def known_structs(self) -> frozenset[str]:
		return frozenset(s.name for s in self.structs)

	def calls(self) -> Iterator[CallPlan]:
		yield from self.functions
		for s in self.structs:
			yield from s.methods

	@property
	def symbols(self) -> tuple[str, ...]:
		"""Every symbol the compiled library must export."""
		out: list[str] = ["__oxbind_string_free"]
		for call in self.calls():
			out.append(call.symbol)
		for s in self.structs:
			out.append(s.free_symbol)
			for f in s.fields:
				out.extend(sym for sym in (f.getter, f.setter) if sym)
			out.extend(s.helpers.values())
		for h in self.handles:
			out.extend(sym for sym in (h.drop, h.clone, h.count, h.get) if sym)
		seen: dict[str, None] = {}
		for sym in out:
			seen.setdefault(sym, None)
		return tuple(seen)


def _handles_in(desc: TypeDescriptor) -> Iterator[OwnedHandle]:
	if isinstance(desc, OwnedHandle):
		yield desc
	elif isinstance(desc, ResultType):
		yield from _handles_in(desc.ok)
		yield from _handles_in(desc.err)
	elif isinstance(desc, OptionType):
		yield from _handles_in(desc.inner)


def plan_call(sig: Signature, bridge: TypeBridge, *, symbol: str | None = None) -> CallPlan:
	"""Classify every value of `sig`; raises UnsupportedType on the first problem."""
	item = sig.qualified_name
	args = tuple(ArgPlan(p.name, p.type, bridge.param(p.type, item=item, at=p.name, span=p.span)) for p in sig.params)
	ret_m = bridge.ret(sig.ret, item=item, span=sig.span)
	payload: tuple[Marshal, ...] = ()
	if isinstance(sig.ret, ResultType):
		payload = (bridge.payload(sig.ret.ok, item=item), bridge.payload(sig.ret.err, item=item))
	elif isinstance(sig.ret, OptionType):
		payload = (bridge.payload(sig.ret.inner, item=item),)
	if sig.exported:
		bad = [a.name for a in args if a.marshal is not Marshal.DIRECT]
		if bad or ret_m not in (Marshal.DIRECT, Marshal.UNIT):
			what = f"parameter `{bad[0]}`" if bad else "its return type"
			raise UnsupportedType(
				message=f"`extern \"C\"` function `{item}` cannot marshal {what}",
				type_text=sig.ret_text,
				item=item,
				span=sig.span,
				hint="drop #[no_mangle]/extern \"C\" so a marshalling shim is generated",
			)
	return CallPlan(signature=sig, symbol=symbol or sig.symbol, args=args, ret=sig.ret, ret_marshal=ret_m, payload=payload)


def _plan_fields(s: StructDescriptor, bridge: TypeBridge) -> tuple[FieldPlan, ...]:
	method_names = {m.name for m in s.methods}
	plans: list[FieldPlan] = []
	for f in s.fields:
		marshal = bridge.field(f.type, item=s.name, at=f.name, span=f.span)
		# A method named get_x / set_x takes the accessor's symbol.
		getter = None if f"get_{f.name}" in method_names else f"{s.name}_get_{f.name}"
		setter = None if f"set_{f.name}" in method_names else f"{s.name}_set_{f.name}"
		plans.append(FieldPlan(name=f.name, type=f.type, marshal=marshal, getter=getter, setter=setter))
	return tuple(plans)


def plan_bindings(extraction: Extraction, *, strict: bool = False) -> BindingPlan:
	"""
	Build the plan for an extraction.

	With `strict`, the first rejection is raised instead of recorded.
	"""
	rejected: dict[str, UnsupportedType] = {}

	def reject(name: str, err: UnsupportedType) -> None:
		if strict:
			raise err
		rejected[name] = err

	struct_fields: dict[str, tuple[FieldPlan, ...]] = {}
	bridge = TypeBridge(frozenset(s.name for s in extraction.structs))
	for s in extraction.structs:
		try:
			struct_fields[s.name] = _plan_fields(s, bridge)
		except UnsupportedType as err:
			err.notes.append(f"struct `{s.name}` is not bound because of this field")
			reject(s.name, err)

	# Rejected structs are unknown to everything planned after them.
	bridge = TypeBridge(frozenset(struct_fields))
	structs: list[StructPlan] = []
	for s in extraction.structs:
		if s.name not in struct_fields:
			continue
		methods: list[CallPlan] = []
		for m in s.methods:
			try:
				if m.name == "free":
					raise UnsupportedType(
						message=f"method `{s.name}::free` collides with the destructor symbol `{s.name}_free`",
						item=m.qualified_name,
						span=m.span,
					)
				methods.append(plan_call(m, bridge))
			except UnsupportedType as err:
				reject(f"{s.name}.{m.name}", err)
		method_names = {m.name for m in s.methods}
		helpers = {
			cap: f"{s.name}_{suffix}"
			for cap, suffix in CAPABILITY_HELPERS.items()
			if cap in s.capabilities and suffix not in method_names
		}
		structs.append(StructPlan(struct=s, fields=struct_fields[s.name], methods=tuple(methods), helpers=helpers))

	functions: list[CallPlan] = []
	generics: list[Signature] = []
	for sig in extraction.functions:
		if sig.is_generic:
			generics.append(sig)
			continue
		try:
			functions.append(plan_call(sig, bridge))
		except UnsupportedType as err:
			reject(sig.name, err)

	handles: dict[OwnedHandle, HandlePlan] = {}
	for call in [*functions, *(m for s in structs for m in s.methods)]:
		for desc in [call.ret, *(a.type for a in call.args)]:
			for h in _handles_in(desc):
				handles.setdefault(h, handle_plan(h))
	return BindingPlan(
		functions=tuple(functions),
		structs=tuple(structs),
		handles=tuple(handles.values()),
		generics=tuple(generics),
		rejected=rejected,
	)


def extend_plan(plan: BindingPlan, calls: Iterable[CallPlan]) -> BindingPlan:
	"""A plan with extra free functions (used for generic specializations)."""
	calls = tuple(calls)
	handles = {h.type: h for h in plan.handles}
	for call in calls:
		for desc in [call.ret, *(a.type for a in call.args)]:
			for h in _handles_in(desc):
				handles.setdefault(h, handle_plan(h))
	return BindingPlan(
		functions=plan.functions + calls,
		structs=plan.structs,
		handles=tuple(handles.values()),
		generics=plan.generics,
		rejected=dict(plan.rejected),
	)


__all__ = [
	"ArgPlan",
	"BindingPlan",
	"CAPABILITY_HELPERS",
	"CallPlan",
	"FieldPlan",
	"HandlePlan",
	"StructPlan",
	"extend_plan",
	"handle_plan",
	"plan_bindings",
	"plan_call",
]
