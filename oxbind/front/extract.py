# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Signature extraction.

Finds declarations carrying the binding marker (`#[bind]` by default) and
turns them into `Signature` / `StructDescriptor` records. Three shapes are
recognised: free functions, structs, and inherent impl blocks whose methods
are grouped under their struct. Problems are reported per declaration as
diagnostics; extraction always continues with the next item.

No type checking happens here: types are classified structurally and left
for the type bridge to accept or reject.
"""

from __future__ import annotations

import re
from typing import Iterable, Optional, Sequence

from lark import Token

from oxbind.core.diagnostics import Diagnostic
from oxbind.core.logging import get_logger
from oxbind.core.span import Span
from oxbind.parser import (
	Attribute,
	DeclarationSyntaxError,
	FnHeader,
	ImplHeader,
	RawItem,
	lex,
	parse_fn_header,
	parse_impl_header,
	parse_struct,
	scan_items,
)
from oxbind.parser.scanner import attribute_ranges, mask
from oxbind.types.descriptors import from_type_expr

from .signatures import (
	Extraction,
	FieldSpec,
	GenericParamSpec,
	ParamSpec,
	ReceiverKind,
	Signature,
	StructDescriptor,
	is_ffi_safe,
)

logger = get_logger("front")

_KIND_NAMES = {
	"enum": "an enum",
	"trait": "a trait",
	"mod": "a module",
	"type": "a type alias",
	"use": "a use declaration",
	"static": "a static",
	"const": "a constant",
	"extern": "an extern block",
	"macro": "a macro invocation",
	"macro_rules": "a macro definition",
	"other": "this item",
	"dangling": "nothing (no item follows it)",
}


def _is_marker(attr: Attribute, marker: str) -> bool:
	return attr.path == marker or attr.path.endswith("::" + marker)


def _is_no_mangle(attr: Attribute) -> bool:
	if attr.path == "no_mangle":
		return True
	return attr.path == "unsafe" and bool(attr.args) and "no_mangle" in attr.args


class _Extractor:
	def __init__(self, source: str, marker: str, file: str | None) -> None:
		self.source = source
		self.marker = marker
		self.marker_re = re.compile(rf"\b{re.escape(marker)}\b")
		self.file = file
		self.diagnostics: list[Diagnostic] = []

	def diag(self, message: str, *, code: str, span: Span, item: str | None = None, notes: Iterable[str] = ()) -> None:
		d = Diagnostic(
			message=message,
			code=code,
			phase="extract",
			severity="warning",
			span=span,
			notes=list(notes),
			item=item,
		)
		logger.debug("%s", d.format_human())
		self.diagnostics.append(d)

	def marked(self, item: RawItem) -> bool:
		"""True when `item` carries a well-formed marker on a bindable item."""
		for attr in item.attrs:
			if attr.malformed and self.marker_re.search(attr.text):
				self.diag(
					f"malformed binding marker: {attr.malformed}",
					code="E-MARKER-MALFORMED",
					span=attr.span,
					item=item.name,
				)
				return False
		marks = [a for a in item.attrs if _is_marker(a, self.marker)]
		if not marks:
			return False
		m = marks[0]
		if m.args is not None or m.has_value:
			self.diag(
				f"binding marker takes no arguments: `{m.text}`",
				code="E-MARKER-ARGS",
				span=m.span,
				item=item.name,
			)
			return False
		if item.kind not in ("fn", "struct", "impl"):
			self.diag(
				f"`#[{self.marker}]` cannot be applied to {_KIND_NAMES.get(item.kind, item.kind)}",
				code="E-MARKER-TARGET",
				span=m.span,
				item=item.name,
				notes=["only functions, structs and impl blocks can be bound"],
			)
			return False
		return True

	def header_text(self, item: RawItem, *, whole: bool = False) -> str:
		end = item.end if whole else item.header_end
		return mask(self.source, item.header_start, end, item.inner_attr_ranges)

	def parse_error(self, item: RawItem, err: DeclarationSyntaxError) -> None:
		span = err.loc if err.loc.line is not None else item.span
		self.diag(
			f"cannot parse declaration of `{item.name or item.kind}`: {err}",
			code="E-DECL-SYNTAX",
			span=span,
			item=item.name,
		)

	def signature(
		self,
		item: RawItem,
		header: FnHeader,
		*,
		owner: str | None = None,
		capabilities: frozenset[str] = frozenset(),
	) -> Optional[Signature]:
		name = header.name
		qualified = name if owner is None else f"{owner}::{name}"
		if "async" in header.qualifiers:
			self.diag(f"async function `{qualified}` cannot be bound", code="E-ASYNC", span=header.span, item=qualified)
			return None
		consts = [g.name for g in header.generics if g.kind == "const"]
		if consts:
			self.diag(
				f"`{qualified}` has const generic parameters ({', '.join(consts)}), which cannot be bound",
				code="E-CONST-GENERIC",
				span=header.span,
				item=qualified,
			)
			return None
		type_params = header.type_params
		if type_params and owner is not None:
			self.diag(
				f"generic method `{qualified}` cannot be bound",
				code="E-GENERIC-METHOD",
				span=header.span,
				item=qualified,
				notes=["move the generic code into a free function"],
			)
			return None
		names = frozenset(g.name for g in type_params)
		params = []
		for p in header.params:
			desc = from_type_expr(p.type, generics=names, self_name=owner)
			params.append(ParamSpec(name=p.name, type=desc, ffi_safe=is_ffi_safe(desc), text=p.type.text, span=p.span))
		generics = []
		for g in type_params:
			constraints = list(g.bounds)
			for pred in header.where:
				if pred.target == g.name:
					constraints.extend(pred.bounds)
			generics.append(GenericParamSpec(name=g.name, constraints=tuple(constraints)))
		if owner is None:
			receiver = ReceiverKind.NONE
		elif header.self_param is None:
			receiver = ReceiverKind.STATIC
		else:
			receiver = {"ref": ReceiverKind.REF, "mut_ref": ReceiverKind.MUT_REF, "value": ReceiverKind.VALUE}[header.self_param.kind]
		exported = owner is None and header.abi is not None and any(_is_no_mangle(a) for a in item.attrs)
		return Signature(
			name=name,
			params=tuple(params),
			ret=from_type_expr(header.ret, generics=names, self_name=owner),
			receiver=receiver,
			generics=tuple(generics),
			capabilities=capabilities,
			owner=owner,
			ret_text=header.ret.text if header.ret is not None else "()",
			exported=exported,
			is_unsafe="unsafe" in header.qualifiers,
			is_pub=header.is_pub,
			span=header.span,
			item_range=(item.header_start, item.end),
		)

	def struct(self, item: RawItem) -> Optional[StructDescriptor]:
		try:
			decl = parse_struct(self.header_text(item, whole=True), file=self.file)
		except DeclarationSyntaxError as err:
			self.parse_error(item, err)
			return None
		if decl.generics:
			self.diag(
				f"generic struct `{decl.name}` cannot be bound",
				code="E-GENERIC-STRUCT",
				span=decl.span,
				item=decl.name,
				notes=["bind a concrete wrapper struct instead"],
			)
			return None
		fields = tuple(
			FieldSpec(
				name=f.name,
				type=from_type_expr(f.type, self_name=decl.name),
				text=f.type.text,
				is_pub=f.is_pub,
				span=f.span,
			)
			for f in decl.fields
		)
		derives: set[str] = set()
		for attr in item.attrs:
			if attr.path == "derive" and attr.args:
				derives.update(attr.args)
		return StructDescriptor(
			name=decl.name,
			fields=fields,
			capabilities=frozenset(derives),
			shape=decl.shape,
			span=decl.span,
		)

	def impl_methods(
		self,
		item: RawItem,
		toks: Sequence[Token],
		*,
		owner: str,
		capabilities: frozenset[str],
	) -> list[Signature]:
		methods: list[Signature] = []
		if item.body_tokens is None:
			return methods
		lo, hi = item.body_tokens
		for inner in scan_items(self.source, toks, lo, hi, file=self.file):
			marked = self.marked(inner)
			if inner.kind != "fn":
				continue
			try:
				fn = parse_fn_header(self.header_text(inner), file=self.file)
			except DeclarationSyntaxError as err:
				self.parse_error(inner, err)
				continue
			if not marked and not fn.is_pub:
				continue
			sig = self.signature(inner, fn, owner=owner, capabilities=capabilities)
			if sig is not None:
				methods.append(sig)
		return methods

	def run(self) -> Extraction:
		toks = lex(self.source)
		items = scan_items(self.source, toks, file=self.file)
		functions: list[Signature] = []
		structs: dict[str, StructDescriptor] = {}
		caps: dict[str, set[str]] = {}
		impls: list[tuple[RawItem, ImplHeader, bool]] = []

		for item in items:
			marked = self.marked(item)
			if item.kind == "fn" and marked:
				try:
					header = parse_fn_header(self.header_text(item), file=self.file)
				except DeclarationSyntaxError as err:
					self.parse_error(item, err)
					continue
				sig = self.signature(item, header)
				if sig is not None:
					functions.append(sig)
			elif item.kind == "struct" and marked:
				desc = self.struct(item)
				if desc is not None:
					structs[desc.name] = desc
			elif item.kind == "impl":
				try:
					header = parse_impl_header(self.header_text(item), file=self.file)
				except DeclarationSyntaxError as err:
					if marked:
						self.parse_error(item, err)
					continue
				target = header.target
				if target.kind != "path" or target.args or len(target.segments) != 1:
					if marked:
						self.diag(
							f"impl target `{target.text}` is not a plain struct name",
							code="E-IMPL-TARGET",
							span=header.span,
						)
					continue
				if header.trait is not None:
					# Trait impls only contribute capabilities (Clone, Default, ...).
					caps.setdefault(target.name, set()).add(header.trait.name)
					continue
				impls.append((item, header, marked))

		for name, extra in caps.items():
			if name in structs and extra:
				s = structs[name]
				structs[name] = StructDescriptor(
					name=s.name,
					fields=s.fields,
					capabilities=s.capabilities | frozenset(extra),
					methods=s.methods,
					shape=s.shape,
					generics=s.generics,
					span=s.span,
				)

		grouped: dict[str, list[Signature]] = {}
		for item, header, marked in impls:
			owner = header.target.name
			if owner not in structs:
				if marked:
					self.diag(
						f"impl target `{owner}` is not a bound struct",
						code="E-IMPL-TARGET",
						span=header.span,
						item=owner,
						notes=[f"mark `struct {owner}` with #[{self.marker}]"],
					)
				elif item.body_tokens is not None:
					lo, hi = item.body_tokens
					for inner in scan_items(self.source, toks, lo, hi, file=self.file):
						if self.marked(inner):
							self.diag(
								f"method `{owner}::{inner.name}` is marked but `{owner}` is not a bound struct",
								code="E-IMPL-TARGET",
								span=inner.span,
								item=f"{owner}::{inner.name}",
							)
				continue
			if header.generics:
				self.diag(f"generic impl block for `{owner}` cannot be bound", code="E-GENERIC-METHOD", span=header.span, item=owner)
				continue
			methods = self.impl_methods(
				item,
				toks,
				owner=owner,
				capabilities=structs[owner].capabilities,
			)
			grouped.setdefault(owner, []).extend(methods)

		final: list[StructDescriptor] = []
		for name, s in structs.items():
			methods = tuple(grouped.get(name, ()))
			final.append(
				StructDescriptor(
					name=s.name,
					fields=s.fields,
					capabilities=s.capabilities,
					methods=methods,
					shape=s.shape,
					generics=s.generics,
					span=s.span,
				)
			)
		marker_re = re.compile(rf"#\[\s*(?:\w+\s*::\s*)*{re.escape(self.marker)}\b")
		marker_ranges = tuple(r for r in attribute_ranges(toks, 0, len(toks)) if marker_re.match(self.source, r[0], r[1]))
		return Extraction(
			functions=tuple(functions),
			structs=tuple(final),
			diagnostics=tuple(self.diagnostics),
			marker_ranges=marker_ranges,
		)


def extract(source: str, marker: str = "bind", *, file: str | None = None) -> Extraction:
	"""
	Extract bound declarations from Rust `source`.

	Returns an `Extraction` that unpacks as `(functions, structs)`; its
	`diagnostics` lists declarations that were skipped and why.
	"""
	return _Extractor(source, marker, file).run()


__all__ = ["extract"]
