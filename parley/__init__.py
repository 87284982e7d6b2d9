"""Parley messaging backend."""
