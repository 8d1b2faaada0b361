"""Core configuration, logging and error types.

Contains:
- config.py: environment-backed settings
- logging.py: structlog setup and `get_logger`
- errors.py: exception hierarchy
- models_io.py: response schemas used across routers
"""
