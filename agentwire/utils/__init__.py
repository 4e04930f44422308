from agentwire.utils.logger import (
    parse_levels,
    resolve_level,
    setup_logging,
    setup_logging_from_config,
    subsystem_logger,
)

__all__ = [
    "setup_logging",
    "setup_logging_from_config",
    "subsystem_logger",
    "resolve_level",
    "parse_levels",
]
