"""Core primitives (context assembly, name extraction, throttling).

Kept free of FastAPI and backend concerns so they can be reused by the engine,
the API and tests.
"""
