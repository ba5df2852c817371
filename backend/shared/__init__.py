"""
Shared module for common utilities used by the record API and its CLI.

STRUCTURE:
- shared.config: Configuration
  - settings.py: Environment config (Pydantic)
  - logging.py: Structured logging

- shared.infrastructure: Database and request plumbing
  - db.py: SQLAlchemy engines, sessions, safe_commit()
  - correlation.py: Request correlation IDs

- shared.utils: Utilities
  - exceptions.py: HTTP exceptions with auto-logging

IMPORT EXAMPLES:
    from shared.config.settings import settings
    from shared.config.logging import get_logger
    from shared.infrastructure.db import build_engine, safe_commit
    from shared.utils.exceptions import NotFoundError, ValidationError
"""
