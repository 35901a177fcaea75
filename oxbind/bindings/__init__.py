# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""Host-side bindings: loading artifacts and wrapping their exports."""

from __future__ import annotations

from .functions import BoundFunction
from .loader import CtypesLibrary, CtypesLoader, Library, Loader
from .module import HostModule, RejectedMember, bind_module, build_struct_class
from .objects import ForeignStruct, OwnedValue, Runtime

__all__ = [
	"BoundFunction",
	"CtypesLibrary",
	"CtypesLoader",
	"ForeignStruct",
	"HostModule",
	"Library",
	"Loader",
	"OwnedValue",
	"RejectedMember",
	"Runtime",
	"bind_module",
	"build_struct_class",
]
