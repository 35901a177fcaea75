# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""Binding plans and Rust glue generation."""

from .glue import GLUE_VERSION, PRELUDE_LINES, c_type, render_glue, render_shim, render_unit, tagged_struct_name
from .plan import (
	CAPABILITY_HELPERS,
	ArgPlan,
	BindingPlan,
	CallPlan,
	FieldPlan,
	HandlePlan,
	StructPlan,
	extend_plan,
	handle_plan,
	plan_bindings,
	plan_call,
)

__all__ = [
	"ArgPlan",
	"BindingPlan",
	"CAPABILITY_HELPERS",
	"CallPlan",
	"FieldPlan",
	"GLUE_VERSION",
	"HandlePlan",
	"PRELUDE_LINES",
	"StructPlan",
	"c_type",
	"extend_plan",
	"handle_plan",
	"plan_bindings",
	"plan_call",
	"render_glue",
	"render_shim",
	"render_unit",
	"tagged_struct_name",
]
