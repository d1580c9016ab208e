"""
SynapseBot - Discord Community Bot

SynapseBot keeps all of its state in flat JSON documents and runs
time-triggered work from those documents, so nothing is lost across
restarts.

Core Components:

- **Storage**: Named JSON documents with atomic writes, rolling per-document
  backups, whole-store snapshots and a bounded write-through cache
- **Sweep Scheduler**: Periodic pass that lifts expired temporary bans and
  mutes and delivers due reminders, firing each record at most once
- **Notifications**: DM delivery with a single channel fallback, plus
  mod-log notices
- **Repositories**: Moderation, reminder, economy and leveling data behind
  small domain-level APIs
- **Storage Commands**: Admin-only ``/storage`` commands for stats, cache
  clearing and snapshots

Usage:
    from synapsebot.main import main
    main()  # Starts the bot
"""
