"""
Test Suite for Memory Recall Pipeline

- unit/: Components in isolation (parsers, ranker, clients, store)
- integration/: Ingestion and recall run end to end on an in-memory database
- api/: HTTP endpoints through FastAPI's TestClient

Gemini is never called; tests use the fakes in tests/fakes.py.
"""
