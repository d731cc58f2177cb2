"""
DRIVER DIAGRAM INFRASTRUCTURE - System-Level Modules

This package contains infrastructure components:
- config: TOML defaults for new diagrams
- logger: Mutation event logging (ring buffer + optional JSONL files)
- csv_codec: Polars-based CSV export and tolerant import
"""

from infrastructure.logger import (
    LoggerConfig,
    MutationLogger,
    get_logger,
    configure_logger,
)
from infrastructure.config import (
    DiagramConfig,
    get_config,
    load_config,
    reset_config,
)

__all__ = [
    "LoggerConfig",
    "MutationLogger",
    "get_logger",
    "configure_logger",
    "DiagramConfig",
    "get_config",
    "load_config",
    "reset_config",
]
