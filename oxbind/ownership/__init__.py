# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""Lifecycle management for foreign-owned values."""

from __future__ import annotations

from oxbind.types.descriptors import OwnershipKind

from .handle import HandleOps, OwnershipHandle
from .manager import OwnershipManager

__all__ = ["HandleOps", "OwnershipHandle", "OwnershipKind", "OwnershipManager"]
