"""
Core module - Storage

This module provides:
- database: CRUD operations for settings, job rows, assistants, workflows and posts
- schema: Database initialization and versioning
- stores: ConfigStore and the expiring JobStore implementations
"""

from polytrans.core.database import (
    DB_FILE,
    get_connection,
    get_app_config,
    set_app_config,
    delete_app_config,
)

from polytrans.core.schema import (
    DB_VERSION,
    get_db_version,
    set_db_version,
    initialize_database,
)
