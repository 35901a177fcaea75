# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""Cargo project materialization, toolchain invocation and the artifact cache."""

from __future__ import annotations

from .cache import CacheEntry, CacheKey, CompilationCache
from .orchestrator import BuildOrchestrator
from .project import ProjectHandle, library_filename, materialize, render_manifest
from .toolchain import Artifact, CargoToolchain, Toolchain, extract_line_refs, suggest_fixes

__all__ = [
	"Artifact",
	"BuildOrchestrator",
	"CacheEntry",
	"CacheKey",
	"CargoToolchain",
	"CompilationCache",
	"ProjectHandle",
	"Toolchain",
	"extract_line_refs",
	"library_filename",
	"materialize",
	"render_manifest",
	"suggest_fixes",
]
