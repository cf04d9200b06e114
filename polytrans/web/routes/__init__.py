"""Route blueprints for the web application."""

from .assistants import assistants_bp
from .background import background_bp
from .settings import settings_bp
from .translations import translations_bp
from .workflows import workflows_bp

__all__ = [
    "assistants_bp",
    "background_bp",
    "settings_bp",
    "translations_bp",
    "workflows_bp",
]
