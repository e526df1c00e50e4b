"""
Core utilities and configuration for the energy ETL engine.

This package provides foundational components used throughout the pipeline:

Modules:
    config: Application configuration and environment variable management
    database: Async engine, session factory and shutdown hook
    exceptions: Exception hierarchy with retry classification
    logging: Logging configuration

Usage:
    from core.config import settings
    from core.database import async_session_maker
    from core.exceptions import ConfigurationError, TransientError
    from core.logging import setup_logging
"""

__all__ = [
    "settings",
    "async_session_maker",
    "setup_logging",
    # Exceptions
    "ETLException",
    "ConfigurationError",
    "JobNotFoundError",
    "TransientError",
    "NonRetryableError",
    "ExtractionError",
    "SourceFailure",
    "NetworkError",
    "RateLimitError",
    "AuthenticationError",
    "ResourceNotFoundError",
    "TransformationError",
    "ValidationError",
    "DataFormatError",
    "LoadError",
    "DatabaseError",
    "DatabaseConnectionError",
]
