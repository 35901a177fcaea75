# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""Signature extraction from marked Rust declarations."""

from __future__ import annotations

from .extract import extract
from .signatures import Extraction, FieldSpec, GenericParamSpec, ParamSpec, ReceiverKind, Signature, StructDescriptor

__all__ = [
	"Extraction",
	"FieldSpec",
	"GenericParamSpec",
	"ParamSpec",
	"ReceiverKind",
	"Signature",
	"StructDescriptor",
	"extract",
]
