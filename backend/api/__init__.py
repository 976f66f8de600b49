# api/__init__.py
from api.server import (
    app,
    create_app,
    configure_logging,
    main,
)

__all__ = [
    "app",
    "create_app",
    "configure_logging",
    "main",
]
