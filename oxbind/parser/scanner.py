# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Item scanner.

Splits Rust source into top-level items (or the items of one impl body)
using a lark lexer, so braces inside strings, chars and comments never
affect nesting. Each item carries its outer attributes and the offsets of its
header and body. Nothing here understands types; headers are handed to
`oxbind.parser.parser` afterwards.
"""

from __future__ import annotations

import functools
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Sequence

from lark import Lark, Token

from oxbind.core.span import Span

_TOKENS_PATH = Path(__file__).with_name("tokens.lark")

# Keywords that introduce an item, in the order they are checked.
_ITEM_KEYWORDS = (
	"fn",
	"struct",
	"enum",
	"impl",
	"trait",
	"mod",
	"type",
	"use",
	"static",
	"macro_rules",
)
# Item kinds whose brace group ends the item.
_BLOCK_KINDS = {"fn", "struct", "enum", "impl", "trait", "mod", "extern", "macro_rules", "macro"}
# Keywords that cannot appear inside a well-formed attribute.
_ATTR_BREAKERS = {"fn", "struct", "enum", "impl", "trait", "mod"}
_OPENERS = {"LBRACE": "RBRACE", "LPAR": "RPAR", "LSQB": "RSQB"}
_CLOSERS = {"RBRACE", "RPAR", "RSQB"}


@functools.lru_cache(maxsize=1)
def _token_lexer() -> Lark:
	return Lark(_TOKENS_PATH.read_text(encoding="utf-8"), parser="lalr", lexer="basic")


def lex(text: str) -> list[Token]:
	"""Tokenize Rust source. Comments and whitespace are dropped."""
	return list(_token_lexer().lex(text))


@dataclass(frozen=True)
class Attribute:
	"""
	An outer attribute `#[path(args)]`.

	`args` is None when the attribute has no parenthesized argument list,
	otherwise the identifier arguments at the top level of the list (enough
	for `derive(...)`). `malformed` explains why the attribute could not be
	closed, when it could not.
	"""

	path: str
	args: Optional[tuple[str, ...]]
	text: str
	start: int
	end: int
	span: Span
	has_value: bool = False
	malformed: Optional[str] = None


@dataclass(frozen=True)
class RawItem:
	kind: str
	name: Optional[str]
	attrs: tuple[Attribute, ...]
	start: int
	header_start: int
	header_end: int
	end: int
	span: Span
	# Offsets of the body's `{` and the position just past its `}`.
	body: Optional[tuple[int, int]] = None
	# Token index range of the body contents (exclusive of braces).
	body_tokens: Optional[tuple[int, int]] = None
	# Attribute ranges inside the header or struct body (field attributes).
	inner_attr_ranges: tuple[tuple[int, int], ...] = field(default_factory=tuple)


def _is_punct(tok: Token, value: str) -> bool:
	return tok.type == "PUNCT" and tok.value == value


def _match_close(toks: Sequence[Token], i: int, hi: int) -> int:
	"""Index of the bracket closing toks[i], or `hi` if unbalanced."""
	stack = [_OPENERS[toks[i].type]]
	j = i + 1
	while j < hi:
		t = toks[j].type
		if t in _OPENERS:
			stack.append(_OPENERS[t])
		elif t in _CLOSERS:
			if t != stack[-1]:
				return hi
			stack.pop()
			if not stack:
				return j
		j += 1
	return hi


def _read_attribute(text: str, toks: Sequence[Token], i: int, hi: int, file: str | None) -> tuple[Attribute, int, bool]:
	"""
	Read `#[...]` or `#![...]` starting at toks[i] (the `#`).

	Returns (attribute, index after it, is_inner).
	"""
	start_tok = toks[i]
	j = i + 1
	inner = False
	if j < hi and _is_punct(toks[j], "!"):
		inner = True
		j += 1
	open_idx = j
	depth = 0
	k = open_idx
	malformed: str | None = None
	close = -1
	while k < hi:
		tok = toks[k]
		if tok.type == "LSQB" or tok.type == "LPAR":
			depth += 1
		elif tok.type == "RSQB" or tok.type == "RPAR":
			depth -= 1
			if depth == 0:
				close = k
				break
		elif tok.type in ("LBRACE", "RBRACE") or (tok.type == "NAME" and tok.value in _ATTR_BREAKERS):
			malformed = "attribute is not closed with `]`"
			break
		k += 1
	if close < 0:
		malformed = malformed or "attribute is not closed with `]`"
		end_idx = k
		end_pos = toks[k - 1].end_pos if k > i else start_tok.end_pos
	else:
		end_idx = close + 1
		end_pos = toks[close].end_pos

	body = list(toks[open_idx + 1 : close if close >= 0 else end_idx])
	path_parts: list[str] = []
	idx = 0
	while idx < len(body) and (body[idx].type == "NAME" or _is_punct(body[idx], ":")):
		if body[idx].type == "NAME":
			path_parts.append(body[idx].value)
		idx += 1
	args: tuple[str, ...] | None = None
	has_value = False
	rest = body[idx:]
	if rest and rest[0].type == "LPAR":
		names: list[str] = []
		depth = 0
		for tok in rest:
			if tok.type in _OPENERS:
				depth += 1
			elif tok.type in _CLOSERS:
				depth -= 1
			elif depth == 1 and tok.type == "NAME":
				names.append(tok.value)
		args = tuple(names)
	elif rest and _is_punct(rest[0], "="):
		has_value = True
	attr = Attribute(
		path="::".join(path_parts),
		args=args,
		text=text[start_tok.start_pos : end_pos],
		start=start_tok.start_pos,
		end=end_pos,
		span=Span(file=file, line=start_tok.line, column=start_tok.column),
		has_value=has_value,
		malformed=malformed,
	)
	return attr, end_idx, inner


def attribute_ranges(toks: Sequence[Token], lo: int, hi: int) -> list[tuple[int, int]]:
	"""Character ranges of every `#[...]` found between token indexes lo and hi."""
	out: list[tuple[int, int]] = []
	i = lo
	while i < hi:
		if _is_punct(toks[i], "#") and i + 1 < hi and toks[i + 1].type == "LSQB":
			close = _match_close(toks, i + 1, hi)
			end = toks[close].end_pos if close < hi else toks[hi - 1].end_pos
			out.append((toks[i].start_pos, end))
			i = close + 1
			continue
		i += 1
	return out


def _classify(toks: Sequence[Token], lo: int, hi: int) -> tuple[str, Optional[str]]:
	"""Return (kind, name) for the header tokens toks[lo:hi]."""
	seen_const = seen_extern = False
	depth = 0
	for k in range(lo, hi):
		tok = toks[k]
		if tok.type in _OPENERS:
			depth += 1
			continue
		if tok.type in _CLOSERS:
			depth -= 1
			continue
		if depth or tok.type != "NAME":
			continue
		if tok.value in _ITEM_KEYWORDS:
			kind = tok.value
			name: str | None = None
			nxt = k + 1
			if kind == "macro_rules" and nxt < hi and _is_punct(toks[nxt], "!"):
				nxt += 1
			if kind not in ("impl", "use") and nxt < hi and toks[nxt].type == "NAME":
				name = toks[nxt].value
			return kind, name
		if tok.value == "const":
			seen_const = True
		elif tok.value == "extern":
			seen_extern = True
	if seen_const:
		name = None
		for k in range(lo, hi - 1):
			if toks[k].type == "NAME" and toks[k].value == "const" and toks[k + 1].type == "NAME":
				name = toks[k + 1].value
				break
		return "const", name
	if seen_extern:
		return "extern", None
	if hi - lo >= 2 and toks[lo].type == "NAME" and _is_punct(toks[lo + 1], "!"):
		return "macro", toks[lo].value
	return "other", None


def scan_items(
	text: str,
	toks: Sequence[Token] | None = None,
	lo: int = 0,
	hi: int | None = None,
	*,
	file: str | None = None,
) -> list[RawItem]:
	"""
	Split the token range [lo, hi) into items.

	Inner attributes (`#![...]`) are skipped. Attributes that are not followed
	by an item produce an item of kind "dangling" so markers on nothing can be
	reported.
	"""
	if toks is None:
		toks = lex(text)
	if hi is None:
		hi = len(toks)
	items: list[RawItem] = []
	i = lo
	while i < hi:
		attrs: list[Attribute] = []
		broken = False
		while i < hi and _is_punct(toks[i], "#"):
			nxt = i + 1
			if nxt < hi and _is_punct(toks[nxt], "!"):
				nxt += 1
			if nxt >= hi or toks[nxt].type != "LSQB":
				break
			attr, i, inner = _read_attribute(text, toks, i, hi, file)
			if not inner:
				attrs.append(attr)
			if attr.malformed:
				broken = True
				break
		if i >= hi:
			if attrs:
				last = attrs[-1]
				items.append(
					RawItem(
						kind="dangling",
						name=None,
						attrs=tuple(attrs),
						start=attrs[0].start,
						header_start=last.end,
						header_end=last.end,
						end=last.end,
						span=attrs[0].span,
					)
				)
			break
		if toks[i].type in _CLOSERS and not broken:
			# Stray closer (unbalanced source); skip it.
			i += 1
			continue

		head = i
		j = i
		depth = 0
		while j < hi:
			t = toks[j]
			if t.type in ("LPAR", "LSQB"):
				depth += 1
			elif t.type in ("RPAR", "RSQB"):
				depth -= 1
			elif t.type == "LBRACE" and depth <= 0:
				break
			elif t.type == "RBRACE" and depth <= 0:
				break
			elif _is_punct(t, ";") and depth <= 0:
				break
			j += 1
		kind, name = _classify(toks, head, j)
		first = toks[head]
		span = Span(file=file, line=first.line, column=first.column)
		header_end = toks[j].start_pos if j < hi else len(text)
		body: tuple[int, int] | None = None
		body_tokens: tuple[int, int] | None = None
		if j < hi and toks[j].type == "LBRACE":
			close = _match_close(toks, j, hi)
			body_end = toks[close].end_pos if close < hi else len(text)
			body = (toks[j].start_pos, body_end)
			body_tokens = (j + 1, close)
			end_idx = close + 1
			if kind not in _BLOCK_KINDS:
				# `const X: T = T { .. };` continues to the semicolon.
				while end_idx < hi and not _is_punct(toks[end_idx], ";"):
					if toks[end_idx].type in _OPENERS:
						end_idx = _match_close(toks, end_idx, hi) + 1
						continue
					end_idx += 1
				end_idx += 1
			elif kind == "macro" and end_idx < hi and _is_punct(toks[end_idx], ";"):
				end_idx += 1
		elif j < hi and toks[j].type == "RBRACE":
			end_idx = j
		else:
			end_idx = j + 1
		end_idx = min(end_idx, hi)
		end = toks[end_idx - 1].end_pos if end_idx > head else toks[head].end_pos
		inner_ranges = attribute_ranges(toks, head, body_tokens[1] if (kind == "struct" and body_tokens) else j)
		items.append(
			RawItem(
				kind=kind,
				name=name,
				attrs=tuple(attrs),
				start=attrs[0].start if attrs else first.start_pos,
				header_start=first.start_pos,
				header_end=header_end,
				end=end,
				span=span,
				body=body,
				body_tokens=body_tokens,
				inner_attr_ranges=tuple(inner_ranges),
			)
		)
		i = end_idx if end_idx > head else head + 1
	return items


def mask(text: str, start: int, end: int, blanks: Sequence[tuple[int, int]] = ()) -> str:
	"""
	Keep text[start:end], blank everything else, and blank `blanks` ranges.

	Newlines survive blanking, so offsets, lines and columns in the result
	match the original text.
	"""
	chars = list(text)
	for idx in range(0, start):
		if chars[idx] != "\n":
			chars[idx] = " "
	for idx in range(end, len(chars)):
		if chars[idx] != "\n":
			chars[idx] = " "
	for lo, hi in blanks:
		for idx in range(max(lo, 0), min(hi, len(chars))):
			if chars[idx] != "\n":
				chars[idx] = " "
	return "".join(chars)


__all__ = ["Attribute", "RawItem", "attribute_ranges", "lex", "mask", "scan_items"]
