from .logging import (
    CONTEXT_FIELDS,
    LEVEL_NAME_TO_INT,
    StructuredConsoleFormatter,
    StructuredJSONFormatter,
    configure_logging,
    get_logger,
)

__all__ = [
    "CONTEXT_FIELDS",
    "LEVEL_NAME_TO_INT",
    "StructuredConsoleFormatter",
    "StructuredJSONFormatter",
    "configure_logging",
    "get_logger",
]
