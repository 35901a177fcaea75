# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""Core shared types: spans, diagnostics, errors, logging and hashing."""
