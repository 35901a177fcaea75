# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""Type descriptors and the host/foreign type bridge."""

from __future__ import annotations

from .bridge import HostType, Marshal, TypeBridge, ctype_of, descriptor_of_value, to_foreign, to_host
from .descriptors import (
	UNIT,
	GenericParam,
	OpaqueStruct,
	OptionType,
	OwnedHandle,
	OwnedString,
	OwnershipKind,
	Pointer,
	Primitive,
	ResultType,
	Slice,
	TypeDescriptor,
	UnknownType,
	from_type_expr,
)
from .values import ForeignOption, ForeignResult

__all__ = [
	"ForeignOption",
	"ForeignResult",
	"GenericParam",
	"HostType",
	"Marshal",
	"OpaqueStruct",
	"OptionType",
	"OwnedHandle",
	"OwnedString",
	"OwnershipKind",
	"Pointer",
	"Primitive",
	"ResultType",
	"Slice",
	"TypeBridge",
	"TypeDescriptor",
	"UNIT",
	"UnknownType",
	"ctype_of",
	"descriptor_of_value",
	"from_type_expr",
	"to_foreign",
	"to_host",
]
