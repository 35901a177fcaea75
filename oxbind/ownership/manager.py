# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Tracking of live ownership handles.

The manager knows every live handle of one compiler context, so callers can
release them all at teardown. It also queues finalizer drops of `Rc` handles
that the garbage collector ran on a thread other than the one that created
the handle; those are replayed on the owner thread by `flush_deferred()`.
"""

from __future__ import annotations

import threading
import weakref
from collections import deque
from typing import Callable

from oxbind.core.logging import get_logger
from oxbind.types.descriptors import OwnershipKind

from .handle import HandleOps, OwnershipHandle, _HandleState, _release

logger = get_logger("ownership")

MAX_DEFERRED = 1000


class OwnershipManager:
	def __init__(self) -> None:
		self._live: "weakref.WeakSet[OwnershipHandle]" = weakref.WeakSet()
		self._lock = threading.Lock()
		self._deferred: deque[tuple[_HandleState, Callable[[int], None], int, str]] = deque()

	def adopt(self, pointer: int, kind: OwnershipKind, ops: HandleOps, *, type_name: str = "value") -> OwnershipHandle:
		"""Wrap a freshly returned foreign pointer."""
		return OwnershipHandle(pointer, kind, ops, type_name=type_name, manager=self)

	def track(self, handle: OwnershipHandle) -> None:
		with self._lock:
			self._live.add(handle)

	def live_handles(self) -> list[OwnershipHandle]:
		with self._lock:
			return [h for h in self._live if not h.dropped]

	def __len__(self) -> int:
		return len(self.live_handles())

	def defer(self, state: _HandleState, drop_fn: Callable[[int], None], owner_thread: int, type_name: str) -> None:
		"""Queue a finalizer drop for the owner thread."""
		with self._lock:
			if len(self._deferred) < MAX_DEFERRED:
				self._deferred.append((state, drop_fn, owner_thread, type_name))
				logger.debug("deferred drop of %s to its owner thread", type_name)
				return
		logger.warning("deferred drop queue is full; dropping %s on the finalizer thread", type_name)
		try:
			_release(state, drop_fn)
		except Exception:
			logger.exception("failed to drop %s", type_name)

	@property
	def deferred_count(self) -> int:
		with self._lock:
			return len(self._deferred)

	def flush_deferred(self) -> int:
		"""Run deferred drops owned by the calling thread. Returns how many ran."""
		if not self._deferred:
			return 0
		me = threading.get_ident()
		with self._lock:
			mine = [item for item in self._deferred if item[2] == me]
			if not mine:
				return 0
			self._deferred = deque(item for item in self._deferred if item[2] != me)
		ran = 0
		for state, drop_fn, _owner, type_name in mine:
			try:
				if _release(state, drop_fn):
					ran += 1
			except Exception:
				logger.exception("deferred drop of %s failed", type_name)
		return ran

	def drop_all(self) -> int:
		"""Drop every live handle (and this thread's deferred drops). Returns how many were released."""
		released = self.flush_deferred()
		for handle in self.live_handles():
			if handle.drop():
				released += 1
		return released


__all__ = ["MAX_DEFERRED", "OwnershipManager"]
