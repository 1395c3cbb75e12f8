"""Backend adapter layer — Pluggable connectors for search engines.

Built-in adapters:
  - meilisearch: MeiliSearch (task-based, metadata-document checkpoints)
  - typesense: Typesense (synchronous, alias checkpoints, synonyms)
  - memory: In-process backend for local development and tests

Implement ``BackendAdapter`` to keep your own search backend in sync.
"""
