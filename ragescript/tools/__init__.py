"""Auxiliary tooling built on top of the decompiler."""
