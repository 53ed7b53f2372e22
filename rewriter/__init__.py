"""Chunked document rewriting (humanizer) module."""
