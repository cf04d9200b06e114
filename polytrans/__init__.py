"""PolyTrans: translation path and workflow execution service."""

__version__ = "1.0.0"
