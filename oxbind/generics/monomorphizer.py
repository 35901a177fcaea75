# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
On-demand specialization of generic functions.

Generic functions cannot be exported over the C ABI, so each distinct set of
concrete types gets its own compiled unit: the user's source plus a renamed,
specialized copy of the item plus the glue for that one function. Instances
are cached per (origin unit, name, types) for the life of the context.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Mapping, Optional, Sequence

from oxbind.core.errors import BuildFailure, UnsupportedType
from oxbind.core.logging import get_logger
from oxbind.front.signatures import ParamSpec, Signature, is_ffi_safe
from oxbind.types.bridge import descriptor_of_value, to_foreign
from oxbind.types.descriptors import GenericParam, Pointer, TypeDescriptor, mentions, substitute

from .specialize import specialize_item

logger = get_logger("generics")


@dataclass(frozen=True)
class GenericInfo:
	"""A registered generic function."""

	signature: Signature
	# Text of the whole item (header and body), without the marker.
	item_text: str
	# Source of the unit the generic came from, as compiled.
	base_source: str
	# Digest identifying that unit.
	origin: str

	@property
	def name(self) -> str:
		return self.signature.name

	@property
	def type_params(self) -> tuple[str, ...]:
		return self.signature.type_param_names

	@property
	def constraints(self) -> dict[str, tuple[str, ...]]:
		return {g.name: g.constraints for g in self.signature.generics}


@dataclass(frozen=True)
class MonomorphizedInstance:
	generic: str
	types: tuple[TypeDescriptor, ...]
	signature: Signature
	item_text: str
	key: Any
	function: Callable[..., Any] = field(compare=False)

	@property
	def name(self) -> str:
		return self.signature.name


# (info, specialized signature, specialized item text) -> (cache key, callable)
Builder = Callable[[GenericInfo, Signature, str], "tuple[Any, Callable[..., Any]]"]


def instance_name(name: str, types: Sequence[TypeDescriptor]) -> str:
	return f"{name}_{'_'.join(t.tag() for t in types)}"


def _bind_values(sig: Signature, args: Sequence[Any], kwargs: Mapping[str, Any]) -> list[tuple[ParamSpec, Any]]:
	if len(args) > len(sig.params):
		raise TypeError(f"{sig.name}() takes {len(sig.params)} arguments but {len(args)} were given")
	out = list(zip(sig.params, args))
	for p in sig.params[len(args) :]:
		if p.name in kwargs:
			out.append((p, kwargs[p.name]))
	return out


def _direct(desc: TypeDescriptor, name: str) -> bool:
	target = GenericParam(name)
	return desc == target or (isinstance(desc, Pointer) and desc.reference and desc.to == target)


def infer_types(sig: Signature, args: Sequence[Any], kwargs: Mapping[str, Any] | None = None) -> tuple[TypeDescriptor, ...]:
	"""
	One concrete descriptor per type parameter, in declaration order.

	The first argument whose parameter is typed `T`, `&T` or `&mut T` decides
	`T`. Without one, the argument at the type parameter's position is used
	when there are as many arguments as type parameters.
	"""
	bound = _bind_values(sig, args, kwargs or {})
	names = sig.type_param_names
	out: list[TypeDescriptor] = []
	for idx, name in enumerate(names):
		found: Optional[TypeDescriptor] = None
		for param, value in bound:
			if _direct(param.type, name):
				found = descriptor_of_value(value)
				break
		if found is None:
			if not any(mentions(p.type, name) for p in sig.params):
				raise UnsupportedType(
					message=f"type parameter `{name}` of `{sig.name}` only appears in the return type",
					reason_code="E-GENERIC-INFER",
					item=sig.name,
					hint=f"specialize explicitly, e.g. {sig.name}[ctypes.c_int32]",
				)
			if len(bound) != len(names):
				raise UnsupportedType(
					message=f"cannot infer type parameter `{name}` of `{sig.name}` from the arguments",
					reason_code="E-GENERIC-INFER",
					item=sig.name,
					hint=f"specialize explicitly, e.g. {sig.name}[ctypes.c_int32]",
				)
			found = descriptor_of_value(bound[idx][1])
		out.append(found)
	return tuple(out)


def specialize_signature(info: GenericInfo, types: Sequence[TypeDescriptor]) -> tuple[Signature, str]:
	"""The concrete signature and item text for `types`."""
	sig = info.signature
	if len(types) != len(info.type_params):
		raise TypeError(f"{sig.name} takes {len(info.type_params)} type parameters, got {len(types)}")
	mapping = dict(zip(info.type_params, types))
	name = instance_name(sig.name, types)
	params = []
	for p in sig.params:
		desc = substitute(p.type, mapping)
		params.append(replace(p, type=desc, ffi_safe=is_ffi_safe(desc)))
	concrete = replace(
		sig,
		name=name,
		params=tuple(params),
		ret=substitute(sig.ret, mapping),
		generics=(),
		exported=False,
		item_range=None,
	)
	text = specialize_item(info.item_text, name, {k: v.rust() for k, v in mapping.items()})
	return concrete, text


class Monomorphizer:
	"""Registry of generic functions and their compiled instances."""

	def __init__(self, lock: threading.RLock | None = None) -> None:
		self._lock = lock if lock is not None else threading.RLock()
		self._generics: dict[tuple[str, str], GenericInfo] = {}
		self._instances: dict[tuple[str, str, tuple[TypeDescriptor, ...]], MonomorphizedInstance] = {}

	def register(self, info: GenericInfo) -> None:
		with self._lock:
			self._generics[(info.origin, info.name)] = info

	def lookup(self, origin: str, name: str) -> GenericInfo | None:
		with self._lock:
			return self._generics.get((origin, name))

	def instances(self, origin: str | None = None, name: str | None = None) -> list[MonomorphizedInstance]:
		with self._lock:
			return [
				inst
				for (o, n, _), inst in self._instances.items()
				if (origin is None or o == origin) and (name is None or n == name)
			]

	def instantiate(self, origin: str, name: str, types: Sequence[TypeDescriptor], build: Builder) -> MonomorphizedInstance | None:
		"""The compiled instance for `types`; None when `name` is not a registered generic."""
		info = self.lookup(origin, name)
		if info is None:
			return None
		types = tuple(types)
		slot = (origin, name, types)
		with self._lock:
			inst = self._instances.get(slot)
		if inst is not None:
			return inst
		sig, text = specialize_signature(info, types)
		substitution = ", ".join(f"{p} = {t.rust()}" for p, t in zip(info.type_params, types))
		logger.info("specializing %s with %s", name, substitution)
		try:
			key, fn = build(info, sig, text)
		except BuildFailure as err:
			err.notes.append(f"while specializing `{name}` with {substitution}")
			bounds = [f"{p}: {' + '.join(c)}" for p, c in info.constraints.items() if c]
			if bounds:
				err.notes.append(f"constraints: {', '.join(bounds)}")
			raise
		inst = MonomorphizedInstance(generic=name, types=types, signature=sig, item_text=text, key=key, function=fn)
		with self._lock:
			# A concurrent caller may have finished first; keep one instance.
			return self._instances.setdefault(slot, inst)

	def call(self, origin: str, name: str, args: Sequence[Any], kwargs: Mapping[str, Any], build: Builder) -> Any:
		"""Infer, specialize and invoke; returns None for unknown names."""
		info = self.lookup(origin, name)
		if info is None:
			return None
		inst = self.instantiate(origin, name, infer_types(info.signature, args, kwargs), build)
		assert inst is not None
		return inst.function(*args, **kwargs)


class GenericFunction:
	"""
	Host callable for a generic Rust function.

	Calling it infers the type parameters from the arguments; indexing it
	(`f[ctypes.c_int32]`, `f[int, str]`) picks them explicitly and returns
	the bound instance.
	"""

	def __init__(self, monomorphizer: Monomorphizer, info: GenericInfo, build: Builder) -> None:
		self._mono = monomorphizer
		self.info = info
		self._build = build
		self.__name__ = info.name
		params = ", ".join(f"{p.name}: {p.text}" for p in info.signature.params)
		self.__doc__ = f"fn {info.name}<{', '.join(info.type_params)}>({params}) -> {info.signature.ret_text}"

	def _instance(self, types: Sequence[TypeDescriptor]) -> MonomorphizedInstance:
		inst = self._mono.instantiate(self.info.origin, self.info.name, types, self._build)
		assert inst is not None
		return inst

	def __call__(self, *args: Any, **kwargs: Any) -> Any:
		types = infer_types(self.info.signature, args, kwargs)
		return self._instance(types).function(*args, **kwargs)

	def __getitem__(self, item: Any) -> Callable[..., Any]:
		items = item if isinstance(item, tuple) else (item,)
		if len(items) != len(self.info.type_params):
			raise TypeError(f"{self.info.name} takes {len(self.info.type_params)} type parameters, got {len(items)}")
		types = tuple(t if isinstance(t, TypeDescriptor) else to_foreign(t) for t in items)
		return self._instance(types).function

	def instances(self) -> list[MonomorphizedInstance]:
		return self._mono.instances(self.info.origin, self.info.name)

	def __repr__(self) -> str:
		return f"<generic Rust function {self.info.name}<{', '.join(self.info.type_params)}>>"


__all__ = [
	"GenericFunction",
	"GenericInfo",
	"Monomorphizer",
	"MonomorphizedInstance",
	"infer_types",
	"instance_name",
	"specialize_signature",
]
