# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""Dependency declarations embedded in Rust source comments."""

from __future__ import annotations

from .parse import parse, parse_toml_dependency, strip_dependency_comments
from .resolve import merge, resolve_version, validate, version_specificity
from .spec import DependencySpec

__all__ = [
	"DependencySpec",
	"merge",
	"parse",
	"parse_toml_dependency",
	"resolve_version",
	"strip_dependency_comments",
	"validate",
	"version_specificity",
]
