"""Typesense backend."""
