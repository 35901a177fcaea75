# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from typing import Any


def _toml_str(value: str) -> str:
	# JSON string escapes are a subset of TOML basic-string escapes.
	return json.dumps(value, ensure_ascii=False)


@dataclass(frozen=True)
class DependencySpec:
	"""
	One crate dependency.

	Exactly one *source* is meaningful: a registry version constraint, a local
	path, or a git remote (optionally pinned by branch/tag/rev). A version may
	accompany a path or git source, as cargo allows.
	"""

	name: str
	version: str | None = None
	features: tuple[str, ...] = field(default_factory=tuple)
	path: str | None = None
	git: str | None = None
	branch: str | None = None
	tag: str | None = None
	rev: str | None = None
	default_features: bool = True

	@property
	def source_kind(self) -> str:
		if self.path is not None:
			return "path"
		if self.git is not None:
			return "git"
		return "registry"

	def normalized(self) -> "DependencySpec":
		"""Return a copy with features deduplicated and sorted."""
		return replace(self, features=tuple(sorted(set(self.features))))

	def to_dict(self) -> dict[str, Any]:
		return {
			"name": self.name,
			"version": self.version,
			"features": sorted(set(self.features)),
			"path": self.path,
			"git": self.git,
			"branch": self.branch,
			"tag": self.tag,
			"rev": self.rev,
			"default_features": self.default_features,
		}

	def manifest_value(self) -> str:
		"""Render the right-hand side of a `[dependencies]` line."""
		if (
			self.version is not None
			and not self.features
			and self.source_kind == "registry"
			and self.default_features
		):
			return _toml_str(self.version)
		parts: list[str] = []
		if self.version is not None:
			parts.append(f"version = {_toml_str(self.version)}")
		if self.path is not None:
			parts.append(f"path = {_toml_str(self.path)}")
		if self.git is not None:
			parts.append(f"git = {_toml_str(self.git)}")
			for key in ("branch", "tag", "rev"):
				val = getattr(self, key)
				if val is not None:
					parts.append(f"{key} = {_toml_str(val)}")
		if self.features:
			feats = ", ".join(_toml_str(f) for f in sorted(set(self.features)))
			parts.append(f"features = [{feats}]")
		if not self.default_features:
			parts.append("default-features = false")
		if self.version is None and self.source_kind == "registry":
			parts.insert(0, 'version = "*"')
		return "{ " + ", ".join(parts) + " }"

	def manifest_line(self) -> str:
		return f"{self.name} = {self.manifest_value()}"


__all__ = ["DependencySpec"]
