"""Web application package for PolyTrans."""

from flask import Flask


def create_app(runtime=None) -> Flask:
    """Application factory for the HTTP API."""
    if runtime is None:
        from polytrans.runtime import create_runtime

        runtime = create_runtime()

    from .app import build_app  # Import here to avoid circular imports

    return build_app(runtime)


__all__ = ["create_app"]
