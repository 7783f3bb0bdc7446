"""Modification Units — loading, validation, and the unified-diff text engine."""
