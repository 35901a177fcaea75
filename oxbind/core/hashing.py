# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any


def sha256_hex(data: bytes) -> str:
	"""Return sha256 hex digest for `data`."""
	return hashlib.sha256(data).hexdigest()


def file_sha256(path: Path) -> str:
	"""Return the sha256 hex digest of a file, streamed in chunks."""
	h = hashlib.sha256()
	with path.open("rb") as f:
		for chunk in iter(lambda: f.read(1 << 20), b""):
			h.update(chunk)
	return h.hexdigest()


def canonical_json_bytes(obj: Any) -> bytes:
	"""
	Render JSON deterministically.

	Rules:
	- UTF-8
	- no insignificant whitespace
	- stable key ordering
	"""
	return json.dumps(obj, sort_keys=True, ensure_ascii=False, separators=(",", ":")).encode("utf-8")


def normalize_source(text: str) -> str:
	"""
	Normalize source text before hashing.

	Only line endings are normalized to `\\n`, matching how rustc reads source.
	Whitespace is kept: it can sit inside a multi-line string literal.
	"""
	return text.replace("\r\n", "\n").replace("\r", "\n")


__all__ = ["canonical_json_bytes", "file_sha256", "normalize_source", "sha256_hex"]
