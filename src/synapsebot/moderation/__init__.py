"""
Moderation side effects performed when punishments expire.

- **gateway.py**: ``ModerationGateway``, the capability the sweep jobs use
  to lift bans and timeouts, and ``DiscordModerationGateway``, its
  implementation on top of a connected bot. Both operations are idempotent:
  lifting a ban that is already gone is not an error.
"""
