"""Language-model backends.

The engine depends only on the `Backend` protocol; `Ag2Backend` is the default
implementation on top of AG2 (`autogen`).
"""
