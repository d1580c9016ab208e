"""
Configuration management for SynapseBot.

- **app_configuration.py**: YAML configuration loader for global settings,
  read under a shared file lock. Exposes typed storage, sweep and
  notification sections and applies environment-variable overrides. Falls
  back to defaults on a missing or malformed file.

- **storage_settings.py**: Typed accessors for the ``storage`` and
  ``sweeps`` sections (directories, backup retention, cache size, sweep
  interval and retention windows).
"""
