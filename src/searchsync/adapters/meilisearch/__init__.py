"""MeiliSearch backend."""
