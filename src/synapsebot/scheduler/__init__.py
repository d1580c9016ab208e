"""
Time-based sweeps over stored records.

- **sweep_scheduler.py**: :class:`SweepScheduler`, a background loop that
  fires handlers for due records exactly once, stamps them complete and
  prunes old inactive records. Registrations describe which document,
  collection and timestamp field to watch.

- **sweep_jobs.py**: The bot's own registrations: lifting expired temporary
  bans, mutes and timeouts (with a mod-log notice) and delivering due
  reminders by DM with a channel fallback.
"""
