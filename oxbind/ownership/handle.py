# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Ownership handles for foreign-owned values.

An `OwnershipHandle` wraps a raw pointer returned by Rust together with how
it is owned:

- UNIQUE (`Box<T>`, structs returned by value): one owner, never cloned;
  `take()` moves the value back into Rust.
- SHARED_LOCAL (`Rc<T>`): `clone()` bumps Rust's non-atomic count. Not safe to
  share across threads; nothing here makes it so.
- SHARED_ATOMIC (`Arc<T>`): `clone()` / `drop()` may run concurrently from
  any thread.

The dropped flag is monotonic. `drop()` releases exactly once; later drops
return False; every other operation raises `UseAfterDrop`. A
`weakref.finalize` callback is the last-resort drop when a handle becomes
unreachable without an explicit drop.
"""

from __future__ import annotations

import threading
import weakref
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Optional

from oxbind.core.errors import UseAfterDrop
from oxbind.core.logging import get_logger
from oxbind.types.descriptors import OwnershipKind

if TYPE_CHECKING:
	from .manager import OwnershipManager

logger = get_logger("ownership")


@dataclass(frozen=True)
class HandleOps:
	"""Foreign operations on one pointer type."""

	drop: Callable[[int], None]
	# Increments the foreign strong count (shared kinds only).
	clone: Optional[Callable[[int], None]] = None
	strong_count: Optional[Callable[[int], int]] = None


class _HandleState:
	"""Mutable part of a handle, shared with its finalizer."""

	__slots__ = ("pointer", "dropped", "lock")

	def __init__(self, pointer: int) -> None:
		self.pointer: Optional[int] = pointer
		self.dropped = False
		self.lock = threading.Lock()


def _release(state: _HandleState, drop_fn: Callable[[int], None]) -> bool:
	with state.lock:
		if state.dropped:
			return False
		state.dropped = True
		ptr, state.pointer = state.pointer, None
	if ptr:
		drop_fn(ptr)
	return True


def _finalize(
	state: _HandleState,
	drop_fn: Callable[[int], None],
	kind: OwnershipKind,
	type_name: str,
	owner_thread: int,
	manager: Optional["OwnershipManager"],
) -> None:
	# Runs from the garbage collector: never raise.
	if kind is OwnershipKind.SHARED_LOCAL and manager is not None and threading.get_ident() != owner_thread:
		manager.defer(state, drop_fn, owner_thread, type_name)
		return
	try:
		if _release(state, drop_fn):
			logger.debug("finalizer dropped %s", type_name)
	except Exception:
		logger.exception("finalizer failed to drop %s", type_name)


class OwnershipHandle:
	"""Host-side owner of one foreign pointer."""

	__slots__ = ("_state", "kind", "ops", "type_name", "owner_thread", "_manager", "_finalizer", "__weakref__")

	def __init__(
		self,
		pointer: int,
		kind: OwnershipKind,
		ops: HandleOps,
		*,
		type_name: str = "value",
		manager: Optional["OwnershipManager"] = None,
	) -> None:
		if not pointer:
			raise ValueError(f"cannot own a null {type_name} pointer")
		if kind.is_shared and ops.clone is None:
			raise ValueError(f"shared {type_name} handle needs a clone operation")
		self._state = _HandleState(pointer)
		self.kind = kind
		self.ops = ops
		self.type_name = type_name
		self.owner_thread = threading.get_ident()
		self._manager = manager
		self._finalizer = weakref.finalize(
			self, _finalize, self._state, ops.drop, kind, type_name, self.owner_thread, manager
		)
		self._finalizer.atexit = False
		if manager is not None:
			manager.track(self)

	@property
	def dropped(self) -> bool:
		return self._state.dropped

	def _live(self, operation: str) -> int:
		ptr = self._state.pointer
		if self._state.dropped or ptr is None:
			raise UseAfterDrop(
				message=f"{self.type_name} was used after it was dropped ({operation})",
				type_name=self.type_name,
				operation=operation,
			)
		return ptr

	@property
	def pointer(self) -> int:
		"""The raw pointer; raises UseAfterDrop once dropped."""
		return self._live("access")

	def drop(self) -> bool:
		"""Release the foreign value. Returns False (and does nothing) if already dropped."""
		self._finalizer.detach()
		released = _release(self._state, self.ops.drop)
		if not released:
			logger.debug("ignored second drop of %s", self.type_name)
		return released

	def clone(self) -> "OwnershipHandle":
		"""A new handle sharing the pointer; shared kinds only."""
		if not self.kind.is_shared:
			raise TypeError(f"{self.type_name} is uniquely owned and cannot be cloned")
		assert self.ops.clone is not None
		with self._state.lock:
			ptr = self._live("clone")
			self.ops.clone(ptr)
		return OwnershipHandle(ptr, self.kind, self.ops, type_name=self.type_name, manager=self._manager)

	def take(self) -> int:
		"""
		Move the value out: returns the pointer and marks the handle dropped
		without running the destructor (Rust now owns it).
		"""
		with self._state.lock:
			ptr = self._live("move")
			self._state.dropped = True
			self._state.pointer = None
		self._finalizer.detach()
		return ptr

	def strong_count(self) -> int:
		with self._state.lock:
			ptr = self._live("strong_count")
			if self.ops.strong_count is None:
				return 1
			return int(self.ops.strong_count(ptr))

	def __enter__(self) -> "OwnershipHandle":
		self._live("enter")
		return self

	def __exit__(self, *exc: object) -> None:
		self.drop()

	def __repr__(self) -> str:
		if self._state.dropped:
			return f"<OwnershipHandle {self.type_name} {self.kind.value} dropped>"
		return f"<OwnershipHandle {self.type_name} {self.kind.value} 0x{self._state.pointer:x}>"


__all__ = ["HandleOps", "OwnershipHandle"]
