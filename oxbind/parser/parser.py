# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Declaration-header parser.

Headers are parsed with lark's Earley parser (headers are short and the
grammar stays close to the reference grammar) over a basic lexer. Callers
pass text in which everything outside the declaration is blanked (see
`scanner.mask`), so lark positions are positions in the original source.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Iterable, Optional

from lark import Lark, Token, Tree
from lark.exceptions import UnexpectedCharacters, UnexpectedEOF, UnexpectedInput, UnexpectedToken

from oxbind.core.span import Span

from .ast import FieldDecl, FnHeader, GenericParamDecl, ImplHeader, Param, SelfParam, StructDecl, TypeExpr, WherePredicate

_GRAMMAR_PATH = Path(__file__).with_name("grammar.lark")
_GRAMMAR_SRC = _GRAMMAR_PATH.read_text(encoding="utf-8")

_PARSER = Lark(
	_GRAMMAR_SRC,
	parser="earley",
	lexer="basic",
	start=["fn_header", "struct_item", "impl_header", "type"],
	propagate_positions=True,
	maybe_placeholders=False,
)


class DeclarationSyntaxError(ValueError):
	"""
	A declaration header could not be parsed.

	Carries a best-effort location (`loc`) so the extractor can turn it into
	a per-declaration diagnostic instead of failing the whole source.
	"""

	def __init__(self, message: str, *, loc: Span) -> None:
		super().__init__(message)
		self.loc = loc


_SQUASH_RE = re.compile(r"\s*([<>()\[\],;:&*=+])\s*")


def _squash(text: str) -> str:
	"""Collapse whitespace in a type/bound snippet into a canonical spelling."""
	flat = " ".join(text.split())
	flat = _SQUASH_RE.sub(r"\1", flat)
	flat = flat.replace(",", ", ").replace("+", " + ").replace("=", " = ")
	flat = flat.replace("- >", "->").replace("-> ", "->")
	for kw in ("mut", "dyn", "impl", "const", "unsafe", "for", "where", "extern"):
		flat = re.sub(rf"\b{kw}\b(?=[^\s,>)\]])", f"{kw} ", flat)
	return " ".join(flat.split())


def _parse(text: str, start: str, file: str | None) -> Tree:
	try:
		return _PARSER.parse(text, start=start)
	except UnexpectedEOF as err:
		raise DeclarationSyntaxError("unexpected end of declaration", loc=Span(file=file)) from err
	except UnexpectedToken as err:
		tok = err.token
		what = f"`{tok}`" if str(tok) else "end of declaration"
		raise DeclarationSyntaxError(
			f"unexpected {what}",
			loc=Span(file=file, line=getattr(tok, "line", None), column=getattr(tok, "column", None)),
		) from err
	except UnexpectedCharacters as err:
		raise DeclarationSyntaxError(
			f"unexpected character {text[err.pos_in_stream]!r}" if 0 <= err.pos_in_stream < len(text) else "unexpected character",
			loc=Span(file=file, line=err.line, column=err.column),
		) from err
	except UnexpectedInput as err:
		raise DeclarationSyntaxError(
			"could not parse declaration",
			loc=Span(file=file, line=getattr(err, "line", None), column=getattr(err, "column", None)),
		) from err


class _Builder:
	"""Walks lark trees into `oxbind.parser.ast` nodes."""

	def __init__(self, text: str, file: str | None) -> None:
		self.text = text
		self.file = file

	def _slice(self, node: Tree | Token) -> str:
		if isinstance(node, Token):
			return str(node)
		if node.meta.empty:
			return ""
		return _squash(self.text[node.meta.start_pos : node.meta.end_pos])

	def _span(self, node: Tree | Token) -> Span:
		if isinstance(node, Token):
			return Span(file=self.file, line=node.line, column=node.column, end_line=node.end_line, end_column=node.end_column)
		if node.meta.empty:
			return Span(file=self.file)
		m = node.meta
		return Span(file=self.file, line=m.line, column=m.column, end_line=m.end_line, end_column=m.end_column)

	@staticmethod
	def _subtrees(node: Tree, *names: str) -> list[Tree]:
		return [c for c in node.children if isinstance(c, Tree) and (not names or c.data in names)]

	@staticmethod
	def _tokens(node: Tree, *types: str) -> list[Token]:
		return [c for c in node.children if isinstance(c, Token) and (not types or c.type in types)]

	# Types

	_TYPE_RULES = {
		"ref_type",
		"ptr_type",
		"slice_type",
		"array_type",
		"tuple_type",
		"paren_type",
		"type_path",
		"dyn_type",
		"impl_type",
		"fn_ptr_type",
		"never_type",
		"infer_type",
	}

	def _type_children(self, node: Tree) -> list[Tree]:
		return [c for c in node.children if isinstance(c, Tree) and c.data in self._TYPE_RULES]

	def type(self, node: Tree) -> TypeExpr:
		kind = node.data
		text = self._slice(node)
		if kind == "ref_type":
			lifetimes = self._tokens(node, "LIFETIME")
			inner = self.type(self._type_children(node)[0])
			return TypeExpr(
				kind="ref",
				args=(inner,),
				mutable=bool(self._tokens(node, "MUT")),
				lifetime=str(lifetimes[0]) if lifetimes else None,
				text=text,
			)
		if kind == "ptr_type":
			inner = self.type(self._type_children(node)[0])
			return TypeExpr(kind="ptr", args=(inner,), mutable=bool(self._tokens(node, "MUT")), text=text)
		if kind in ("slice_type", "array_type"):
			inner = self.type(self._type_children(node)[0])
			return TypeExpr(kind="slice" if kind == "slice_type" else "array", args=(inner,), text=text)
		if kind == "tuple_type":
			return TypeExpr(kind="tuple", args=tuple(self.type(c) for c in self._type_children(node)), text=text or "()")
		if kind == "paren_type":
			return self.type(self._type_children(node)[0])
		if kind == "type_path":
			return self._type_path(node, text)
		if kind == "dyn_type":
			return TypeExpr(kind="dyn", text=text)
		if kind == "impl_type":
			return TypeExpr(kind="impl", text=text)
		if kind == "fn_ptr_type":
			return TypeExpr(kind="fn", text=text)
		if kind == "never_type":
			return TypeExpr(kind="never", text="!")
		if kind == "infer_type":
			return TypeExpr(kind="infer", text="_")
		raise TypeError(f"unexpected type node {kind}")

	def _type_path(self, node: Tree, text: str) -> TypeExpr:
		segments: list[str] = []
		args: tuple[TypeExpr, ...] = ()
		opaque = False
		segs = self._subtrees(node, "path_segment", "fn_sugar_segment")
		for idx, seg in enumerate(segs):
			ident = self._subtrees(seg, "path_ident")[0]
			segments.append(str(ident.children[0]))
			if seg.data == "fn_sugar_segment":
				opaque = True
				continue
			ga = self._subtrees(seg, "generic_args")
			if not ga:
				continue
			seg_args, seg_opaque = self._generic_args(ga[0])
			opaque = opaque or seg_opaque
			if idx == len(segs) - 1:
				args = seg_args
			elif seg_args:
				opaque = True
		return TypeExpr(kind="path", segments=tuple(segments), args=args, opaque_args=opaque, text=text)

	def _generic_args(self, node: Tree) -> tuple[tuple[TypeExpr, ...], bool]:
		types: list[TypeExpr] = []
		opaque = False
		for c in node.children:
			if not isinstance(c, Tree):
				continue
			if c.data in self._TYPE_RULES:
				types.append(self.type(c))
			elif c.data == "lifetime_arg":
				continue
			else:
				opaque = True
		return tuple(types), opaque

	# Generics and bounds

	def bounds(self, node: Tree | None) -> tuple[str, ...]:
		if node is None:
			return ()
		out: list[str] = []
		for b in self._subtrees(node, "lifetime_bound", "trait_bound"):
			out.append(self._slice(b))
		return tuple(out)

	def generic_params(self, node: Tree | None) -> tuple[GenericParamDecl, ...]:
		if node is None:
			return ()
		out: list[GenericParamDecl] = []
		for p in self._subtrees(node):
			span = self._span(p)
			if p.data == "lifetime_param":
				lts = self._tokens(p, "LIFETIME")
				out.append(GenericParamDecl(name=str(lts[0]), kind="lifetime", bounds=tuple(str(t) for t in lts[1:]), span=span))
			elif p.data == "type_param":
				name = self._tokens(p, "NAME")[0]
				bnds = self._subtrees(p, "bounds")
				types = self._type_children(p)
				out.append(
					GenericParamDecl(
						name=str(name),
						kind="type",
						bounds=self.bounds(bnds[0]) if bnds else (),
						default=self.type(types[0]) if types else None,
						span=span,
					)
				)
			elif p.data == "const_param":
				name = self._tokens(p, "NAME")[0]
				ty = self._type_children(p)[0]
				out.append(GenericParamDecl(name=str(name), kind="const", bounds=(self._slice(ty),), span=span))
		return tuple(out)

	def where_clause(self, node: Tree | None) -> tuple[WherePredicate, ...]:
		if node is None:
			return ()
		out: list[WherePredicate] = []
		for pred in self._subtrees(node, "type_predicate", "lifetime_predicate"):
			if pred.data == "type_predicate":
				target = self._type_children(pred)[0]
				bnds = self._subtrees(pred, "bounds")
				out.append(WherePredicate(target=self._slice(target), bounds=self.bounds(bnds[0]) if bnds else ()))
			else:
				lts = self._tokens(pred, "LIFETIME")
				out.append(WherePredicate(target=str(lts[0]), bounds=tuple(str(t) for t in lts[1:])))
		return tuple(out)

	# Items

	def _first(self, node: Tree, name: str) -> Optional[Tree]:
		found = self._subtrees(node, name)
		return found[0] if found else None

	def _params(self, node: Tree | None) -> tuple[Optional[SelfParam], tuple[Param, ...]]:
		if node is None:
			return None, ()
		self_param: SelfParam | None = None
		params: list[Param] = []
		for idx, p in enumerate(self._subtrees(node)):
			if p.data == "ref_self":
				kind = "mut_ref" if self._tokens(p, "MUT") else "ref"
				self_param = SelfParam(kind=kind, span=self._span(p))
			elif p.data == "value_self":
				kind = "value"
				types = self._type_children(p)
				if types:
					ty = self.type(types[0])
					if ty.kind == "ref":
						kind = "mut_ref" if ty.mutable else "ref"
				self_param = SelfParam(kind=kind, span=self._span(p))
			elif p.data == "typed_param":
				pat = self._subtrees(p, "name_pattern", "wild_pattern", "tuple_pattern")[0]
				if pat.data == "name_pattern":
					name = str(self._tokens(pat, "NAME")[-1])
				else:
					name = f"arg{idx}"
				ty = self.type(self._type_children(p)[0])
				params.append(Param(name=name, type=ty, span=self._span(p)))
		return self_param, tuple(params)

	def fn_header(self, node: Tree) -> FnHeader:
		name = self._tokens(node, "NAME")[0]
		qualifiers: list[str] = []
		abi: str | None = None
		for q in self._subtrees(node, "fn_qualifier"):
			inner = q.children[0]
			if isinstance(inner, Tree) and inner.data == "abi":
				strings = self._tokens(inner, "STRING")
				abi = strings[0][1:-1] if strings else "C"
				qualifiers.append("extern")
			else:
				qualifiers.append(str(inner))
		self_param, params = self._params(self._first(node, "param_list"))
		ret_nodes = self._subtrees(node, "ret_type")
		ret = self.type(self._type_children(ret_nodes[0])[0]) if ret_nodes else None
		return FnHeader(
			name=str(name),
			params=params,
			self_param=self_param,
			ret=ret,
			generics=self.generic_params(self._first(node, "generic_params")),
			where=self.where_clause(self._first(node, "where_clause")),
			qualifiers=tuple(qualifiers),
			abi=abi,
			is_pub=self._first(node, "visibility") is not None,
			span=self._span(name),
		)

	def struct_item(self, node: Tree) -> StructDecl:
		name = self._tokens(node, "NAME")[0]
		body = self._subtrees(node, "named_body", "tuple_body", "unit_body")[0]
		fields: list[FieldDecl] = []
		shape = {"named_body": "named", "tuple_body": "tuple", "unit_body": "unit"}[body.data]
		for lst in self._subtrees(body, "field_list", "tuple_field_list"):
			for idx, f in enumerate(self._subtrees(lst, "field", "tuple_field")):
				ty = self.type(self._type_children(f)[0])
				is_pub = self._first(f, "visibility") is not None
				if f.data == "field":
					fname = str(self._tokens(f, "NAME")[0])
				else:
					fname = str(idx)
				fields.append(FieldDecl(name=fname, type=ty, is_pub=is_pub, span=self._span(f)))
		generics = self.generic_params(self._first(node, "generic_params"))
		return StructDecl(name=str(name), fields=tuple(fields), generics=generics, shape=shape, span=self._span(name))

	def impl_header(self, node: Tree) -> ImplHeader:
		target_node = self._subtrees(node, "inherent_target", "trait_target")[0]
		types = [self.type(c) for c in self._type_children(target_node)]
		if target_node.data == "trait_target":
			trait, target = types[0], types[1]
		else:
			trait, target = None, types[0]
		return ImplHeader(
			target=target,
			trait=trait,
			generics=self.generic_params(self._first(node, "generic_params")),
			span=self._span(node),
		)


def parse_fn_header(text: str, *, file: str | None = None) -> FnHeader:
	"""Parse a function signature (no body)."""
	return _Builder(text, file).fn_header(_parse(text, "fn_header", file))


def parse_struct(text: str, *, file: str | None = None) -> StructDecl:
	"""Parse a complete struct item."""
	return _Builder(text, file).struct_item(_parse(text, "struct_item", file))


def parse_impl_header(text: str, *, file: str | None = None) -> ImplHeader:
	"""Parse an impl header (no body)."""
	return _Builder(text, file).impl_header(_parse(text, "impl_header", file))


def parse_type(text: str) -> TypeExpr:
	"""Parse a standalone type, e.g. `Option<&'a str>`."""
	tree = _parse(text, "type", None)
	builder = _Builder(text, None)
	if isinstance(tree, Tree) and tree.data == "type":
		tree = builder._type_children(tree)[0]
	return builder.type(tree)


def type_names(ty: TypeExpr) -> Iterable[str]:
	"""Yield every path segment name mentioned in `ty`."""
	yield from ty.segments
	for a in ty.args:
		yield from type_names(a)


__all__ = ["DeclarationSyntaxError", "parse_fn_header", "parse_impl_header", "parse_struct", "parse_type", "type_names"]
