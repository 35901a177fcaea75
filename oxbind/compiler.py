# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
The front-end contract: `compile_and_bind(source, config) -> HostModule`.

Pipeline for one source text:

1. dependency declarations are parsed from comments, merged with the
   configured ones and validated;
2. marked declarations are extracted and planned (unsupported types are
   rejected per declaration);
3. the user source (markers blanked, line positions intact) and the
   generated glue form one `src/lib.rs`, whose content hash is the cache key;
4. a cache miss builds the crate with cargo; the artifact is loaded and
   wrapped into a `HostModule`.

Generic functions are not compiled up front; each is exposed as a
`GenericFunction` that specializes, builds and binds on first use.
"""

from __future__ import annotations

import time
import warnings
from dataclasses import replace
from pathlib import Path
from typing import Any, Callable, Optional

from oxbind.bindings.functions import BoundFunction
from oxbind.bindings.module import HostModule, bind_module
from oxbind.bindings.objects import Runtime
from oxbind.build.cache import CacheKey
from oxbind.build.orchestrator import BuildOrchestrator
from oxbind.build.toolchain import Artifact
from oxbind.codegen.glue import GLUE_VERSION, PRELUDE_LINES, render_unit
from oxbind.codegen.plan import BindingPlan, extend_plan, plan_bindings, plan_call
from oxbind.config import CompilerConfig
from oxbind.context import CompilerContext
from oxbind.core.errors import DiagnosticParseWarning
from oxbind.core.logging import get_logger
from oxbind.deps import merge, parse, strip_dependency_comments, validate
from oxbind.deps.resolve import with_absolute_paths
from oxbind.deps.spec import DependencySpec
from oxbind.front.extract import extract
from oxbind.front.signatures import Signature
from oxbind.generics.monomorphizer import GenericFunction, GenericInfo
from oxbind.parser.scanner import mask
from oxbind.types.bridge import TypeBridge

logger = get_logger("compiler")


def crate_name(key: CacheKey) -> str:
	return f"ox_{key.short}"


def _unit_key(unit: str, config: CompilerConfig, deps: tuple[DependencySpec, ...], **extra: Any) -> CacheKey:
	return CacheKey.compute(unit, config.fingerprint(), deps, extra={"glue": GLUE_VERSION, **extra})


def _line_count(text: str) -> int:
	return text.count("\n") + (0 if text.endswith("\n") else 1)


class _Unit:
	"""State shared by one compiled unit and its generic instances."""

	def __init__(
		self,
		context: CompilerContext,
		config: CompilerConfig,
		orchestrator: BuildOrchestrator,
		deps: tuple[DependencySpec, ...],
		user_source: str,
		plan: BindingPlan,
	) -> None:
		self.context = context
		self.config = config
		self.orchestrator = orchestrator
		self.deps = deps
		self.user_source = user_source
		self.user_lines = _line_count(user_source)
		self.plan = plan
		self.runtime: Optional[Runtime] = None

	def build(self, unit: str, key: CacheKey, plan: BindingPlan) -> tuple[Runtime, Artifact]:
		started = time.monotonic()
		artifact = self.orchestrator.build_cached(
			key,
			crate_name(key),
			self.deps,
			unit,
			config=self.config,
			symbols=plan.symbols,
			line_offset=PRELUDE_LINES,
			user_lines=self.user_lines,
		)
		logger.debug("artifact for %s ready in %.2fs", key.short, time.monotonic() - started)
		library = self.context.load_artifact(artifact)
		rt = Runtime(library, self.context.manager, plan)
		if self.runtime is not None:
			# Instances return and accept the unit's struct classes.
			rt.structs = self.runtime.structs
		return rt, artifact

	def build_instance(self, info: GenericInfo, sig: Signature, item_text: str) -> tuple[CacheKey, Callable[..., Any]]:
		call = plan_call(sig, TypeBridge(self.plan.known_structs))
		base = BindingPlan(structs=self.plan.structs, handles=self.plan.handles)
		plan = extend_plan(base, [call])
		unit = render_unit(self.user_source, plan, extra=item_text)
		key = _unit_key(unit, self.config, self.deps, instance=sig.name, origin=info.origin)
		rt, _ = self.build(unit, key, plan)
		return key, BoundFunction(rt, call)


def compile_and_bind(
	source: str,
	config: CompilerConfig | None = None,
	*,
	context: CompilerContext | None = None,
	file: str | None = None,
) -> HostModule:
	"""
	Compile the marked declarations of Rust `source` and bind them.

	Without a `context` a fresh one is used; pass one to share loaded
	libraries, generic instances and ownership tracking between calls. The
	on-disk artifact cache is shared either way (keyed by content).
	"""
	config = config if config is not None else CompilerConfig()
	context = context if context is not None else CompilerContext()

	strict_deps = config.strict_dependencies
	deps = merge(parse(source, strict=strict_deps), config.dependencies, strict=strict_deps)
	deps = tuple(with_absolute_paths(deps, config.base_dir or Path.cwd()))
	validate(deps)

	body = strip_dependency_comments(source)
	extraction = extract(body, config.marker, file=file)
	for diag in extraction.diagnostics:
		logger.warning("%s", diag.format_human())
		warnings.warn(diag.format_human(), DiagnosticParseWarning, stacklevel=2)
	plan = plan_bindings(extraction, strict=config.strict_bindings)
	for name, err in plan.rejected.items():
		logger.info("not binding %s: %s", name, err.message)

	user_source = mask(body, 0, len(body), extraction.marker_ranges)
	unit = render_unit(user_source, plan)
	key = _unit_key(unit, config, deps)
	cached = context.module_for(key.digest)
	if cached is not None:
		logger.debug("reusing module %s", key.short)
		return cached

	state = _Unit(context, config, context.orchestrator_for(config), deps, user_source, plan)
	rt, artifact = state.build(unit, key, plan)
	state.runtime = rt

	generics: dict[str, GenericFunction] = {}
	for sig in plan.generics:
		assert sig.item_range is not None
		start, end = sig.item_range
		info = GenericInfo(signature=sig, item_text=user_source[start:end], base_source=user_source, origin=key.digest)
		context.monomorphizer.register(info)
		generics[sig.name] = GenericFunction(context.monomorphizer, info, state.build_instance)

	module = bind_module(
		rt,
		plan,
		name=crate_name(key),
		extra=generics,
		diagnostics=extraction.diagnostics,
		artifact=artifact,
	)
	logger.info(
		"bound %d functions, %d structs, %d generics (%d rejected)",
		len(plan.functions),
		len(plan.structs),
		len(generics),
		len(plan.rejected),
	)
	return context.remember_module(key.digest, module)


def compile_file(path: Path, config: CompilerConfig | None = None, *, context: CompilerContext | None = None) -> HostModule:
	"""`compile_and_bind` for a `.rs` file; relative path dependencies resolve next to it."""
	path = Path(path)
	config = config if config is not None else CompilerConfig()
	if config.base_dir is None:
		config = replace(config, base_dir=path.parent)
	return compile_and_bind(path.read_text(encoding="utf-8"), config, context=context, file=str(path))


__all__ = ["compile_and_bind", "compile_file", "crate_name"]
