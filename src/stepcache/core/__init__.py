"""Core fingerprinting primitives."""
