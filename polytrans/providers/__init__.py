"""
Providers module - Raw translation providers

This module provides:
- base: TranslationProvider capability interface
- registry: ProviderRegistry lookup table
- google: Google Translate provider
"""

from polytrans.providers.base import TranslationProvider
from polytrans.providers.registry import ProviderRegistry
from polytrans.providers.google import GoogleProvider
