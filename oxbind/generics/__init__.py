# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""Generic function specialization."""

from __future__ import annotations

from .monomorphizer import (
	GenericFunction,
	GenericInfo,
	Monomorphizer,
	MonomorphizedInstance,
	infer_types,
	instance_name,
	specialize_signature,
)
from .specialize import SpecializationError, specialize_item, substitute_text

__all__ = [
	"GenericFunction",
	"GenericInfo",
	"Monomorphizer",
	"MonomorphizedInstance",
	"SpecializationError",
	"infer_types",
	"instance_name",
	"specialize_item",
	"specialize_signature",
	"substitute_text",
]
