"""
Utility functions and helpers for SynapseBot.

This package provides reusable utilities:

- **logger.py**: Centralized logging configuration with colored console output,
  a rotating per-session log file, and prompt_toolkit console integration.
  Suppresses noise from Discord internals and networking libraries.

- **time_utils.py**: Duration parsing and formatting, plus the timestamp
  helpers shared by the file store and the sweep scheduler. All timestamps
  are timezone-aware UTC.
"""
