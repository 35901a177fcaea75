# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""Lexing and declaration parsing for the Rust subset oxbind binds."""

from __future__ import annotations

from .ast import FieldDecl, FnHeader, GenericParamDecl, ImplHeader, Param, SelfParam, StructDecl, TypeExpr, WherePredicate
from .parser import DeclarationSyntaxError, parse_fn_header, parse_impl_header, parse_struct, parse_type
from .scanner import Attribute, RawItem, lex, scan_items

__all__ = [
	"Attribute",
	"DeclarationSyntaxError",
	"FieldDecl",
	"FnHeader",
	"GenericParamDecl",
	"ImplHeader",
	"Param",
	"RawItem",
	"SelfParam",
	"StructDecl",
	"TypeExpr",
	"WherePredicate",
	"lex",
	"parse_fn_header",
	"parse_impl_header",
	"parse_struct",
	"parse_type",
	"scan_items",
]
