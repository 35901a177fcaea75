# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""Test doubles for the toolchain and the library loader."""

from __future__ import annotations

from .fakes import FakeHeap, FakeLibrary, FakeLoader, FakeToolchain

__all__ = ["FakeHeap", "FakeLibrary", "FakeLoader", "FakeToolchain"]
