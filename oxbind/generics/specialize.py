# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Token-level specialization of generic function items.

The item text is lexed (strings, chars and comments are single tokens or
dropped, so they are never rewritten) and edited in place:

    pub fn largest<T: PartialOrd + Copy>(xs: &[T]) -> T { ... }
    pub fn largest_i32(xs: &[i32]) -> i32 where i32: PartialOrd + Copy { ... }

Occurrences of a type parameter are replaced unless they are a path segment
after `::`, a field or method name after `.`, or a macro name. Lifetime
parameters stay in the generic list; inline bounds become `where`
predicates over the concrete types.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Mapping, Sequence

from lark import Token

from oxbind.parser import lex

_IDENT = re.compile(r"[A-Za-z_][A-Za-z0-9_]*\Z")


class SpecializationError(ValueError):
	"""The item text does not have the shape of a generic function."""


@dataclass(frozen=True)
class GenericList:
	"""Parsed `<...>` of a function header."""

	start: int
	end: int
	lifetimes: tuple[str, ...]
	# Type parameter -> inline bound text ("" when unbounded).
	bounds: tuple[tuple[str, str], ...]


def _punct(tok: Token, value: str) -> bool:
	return tok.type == "PUNCT" and tok.value == value


def _joined(a: Token, b: Token) -> bool:
	return a.end_pos == b.start_pos


def _is_path_sep(toks: Sequence[Token], i: int) -> bool:
	"""toks[i] and toks[i+1] spell `::`."""
	return i + 1 < len(toks) and _punct(toks[i], ":") and _punct(toks[i + 1], ":") and _joined(toks[i], toks[i + 1])


def _is_arrow_close(toks: Sequence[Token], i: int) -> bool:
	return i > 0 and _punct(toks[i], ">") and _punct(toks[i - 1], "-") and _joined(toks[i - 1], toks[i])


def _name_index(toks: Sequence[Token]) -> int:
	for i, tok in enumerate(toks):
		if tok.type == "NAME" and tok.value == "fn" and i + 1 < len(toks) and toks[i + 1].type == "NAME":
			return i + 1
	raise SpecializationError("no `fn` item found")


def _close_angle(toks: Sequence[Token], i: int) -> int:
	depth = 0
	for k in range(i, len(toks)):
		tok = toks[k]
		if _punct(tok, "<"):
			depth += 1
		elif _punct(tok, ">") and not _is_arrow_close(toks, k):
			depth -= 1
			if depth == 0:
				return k
	raise SpecializationError("unclosed generic parameter list")


def _split_top_level(toks: Sequence[Token], lo: int, hi: int) -> list[tuple[int, int]]:
	"""Comma-separated token ranges of toks[lo:hi]."""
	out: list[tuple[int, int]] = []
	depth = 0
	start = lo
	for k in range(lo, hi):
		tok = toks[k]
		if tok.type in ("LPAR", "LSQB", "LBRACE") or _punct(tok, "<"):
			depth += 1
		elif tok.type in ("RPAR", "RSQB", "RBRACE") or (_punct(tok, ">") and not _is_arrow_close(toks, k)):
			depth -= 1
		elif _punct(tok, ",") and depth == 0:
			out.append((start, k))
			start = k + 1
	if start < hi:
		out.append((start, hi))
	return out


def parse_generic_list(text: str, toks: Sequence[Token], name_idx: int) -> GenericList | None:
	i = name_idx + 1
	if i >= len(toks) or not _punct(toks[i], "<"):
		return None
	close = _close_angle(toks, i)
	lifetimes: list[str] = []
	bounds: list[tuple[str, str]] = []
	for lo, hi in _split_top_level(toks, i + 1, close):
		first = toks[lo]
		if first.type == "LIFETIME":
			lifetimes.append(text[first.start_pos : toks[hi - 1].end_pos])
			continue
		if first.type != "NAME":
			raise SpecializationError(f"unexpected generic parameter `{text[first.start_pos:toks[hi - 1].end_pos]}`")
		bound = ""
		if lo + 1 < hi and _punct(toks[lo + 1], ":"):
			# A default (`T: X = Y`) is not part of the bound; `=` inside
			# `<...>` belongs to an associated type (`Add<Output = T>`).
			end = hi
			depth = 0
			for k in range(lo + 2, hi):
				if _punct(toks[k], "<"):
					depth += 1
				elif _punct(toks[k], ">") and not _is_arrow_close(toks, k):
					depth -= 1
				elif _punct(toks[k], "=") and depth == 0:
					end = k
					break
			if end > lo + 2:
				bound = text[toks[lo + 2].start_pos : toks[end - 1].end_pos]
		bounds.append((first.value, bound))
	return GenericList(
		start=toks[i].start_pos,
		end=toks[close].end_pos,
		lifetimes=tuple(lifetimes),
		bounds=tuple(bounds),
	)


def substitute_text(text: str, mapping: Mapping[str, str]) -> str:
	"""Replace type-parameter tokens in a fragment (bounds, types)."""
	toks = lex(text)
	edits = _substitutions(toks, 0, len(toks), mapping)
	return _apply(text, edits)


def _substitutions(toks: Sequence[Token], lo: int, hi: int, mapping: Mapping[str, str]) -> list[tuple[int, int, str]]:
	edits: list[tuple[int, int, str]] = []
	for k in range(lo, hi):
		tok = toks[k]
		if tok.type != "NAME" or tok.value not in mapping:
			continue
		if k > 0 and _punct(toks[k - 1], "."):
			continue
		if k > 1 and _is_path_sep(toks, k - 2):
			continue
		if k + 1 < len(toks) and _punct(toks[k + 1], "!"):
			continue
		concrete = mapping[tok.value]
		if _is_path_sep(toks, k + 1) and not _IDENT.match(concrete):
			concrete = f"<{concrete}>"
		edits.append((tok.start_pos, tok.end_pos, concrete))
	return edits


def _apply(text: str, edits: list[tuple[int, int, str]]) -> str:
	out = text
	for start, end, repl in sorted(edits, reverse=True):
		out = out[:start] + repl + out[end:]
	return out


def _body_brace(toks: Sequence[Token], after: int) -> int:
	"""Index of the `{` opening the function body."""
	depth = 0
	for k in range(after, len(toks)):
		tok = toks[k]
		if tok.type in ("LPAR", "LSQB") or _punct(tok, "<"):
			depth += 1
		elif tok.type in ("RPAR", "RSQB") or (_punct(tok, ">") and not _is_arrow_close(toks, k)):
			depth -= 1
		elif tok.type == "LBRACE" and depth == 0:
			return k
	raise SpecializationError("function has no body")


def _where_index(toks: Sequence[Token], lo: int, hi: int) -> int | None:
	for k in range(lo, hi):
		if toks[k].type == "NAME" and toks[k].value == "where":
			return k
	return None


def specialize_item(text: str, new_name: str, mapping: Mapping[str, str]) -> str:
	"""
	Rewrite generic function `text` for the concrete types in `mapping`
	(type parameter -> Rust spelling), renaming it to `new_name`.
	"""
	toks = lex(text)
	name_idx = _name_index(toks)
	generics = parse_generic_list(text, toks, name_idx)
	edits: list[tuple[int, int, str]] = [(toks[name_idx].start_pos, toks[name_idx].end_pos, new_name)]
	rest = name_idx + 1
	if generics is not None:
		kept = f"<{', '.join(generics.lifetimes)}>" if generics.lifetimes else ""
		edits.append((generics.start, generics.end, kept))
		rest = next(k for k, t in enumerate(toks) if t.start_pos >= generics.end)
		missing = [name for name, _ in generics.bounds if name not in mapping]
		if missing:
			raise SpecializationError(f"no concrete type for {', '.join(missing)}")
	edits.extend(_substitutions(toks, rest, len(toks), mapping))

	body = _body_brace(toks, rest)
	predicates = []
	if generics is not None:
		for name, bound in generics.bounds:
			# `?Sized` is only meaningful on a type parameter.
			parts = [p.strip() for p in bound.split("+") if p.strip() and not p.strip().startswith("?")]
			if parts:
				joined = substitute_text(" + ".join(parts), mapping)
				predicates.append(f"{mapping[name]}: {joined}")
	if predicates:
		where = _where_index(toks, rest, body)
		if where is not None:
			tail = "," if body > where + 1 else ""
			edits.append((toks[where].end_pos, toks[where].end_pos, " " + ", ".join(predicates) + tail))
		else:
			pos = toks[body].start_pos
			edits.append((pos, pos, f"where {', '.join(predicates)} "))
	return _apply(text, edits)


__all__ = ["GenericList", "SpecializationError", "parse_generic_list", "specialize_item", "substitute_text"]
