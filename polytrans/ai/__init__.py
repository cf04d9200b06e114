"""
AI Module

This module provides the vendor-facing layer:
- http: httpx transport with a single retry on transient failures
- chat_clients: chat completion clients and their factory
- assistant_clients: vendor-native assistant clients and their factory
- response_parser: JSON extraction from model output
"""

from polytrans.ai.exceptions import ErrorKind, TranslationError

__all__ = ['ErrorKind', 'TranslationError']
