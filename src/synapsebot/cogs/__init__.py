"""
Py-cord cogs wiring SynapseBot services into the Discord client.

- **scheduler_cog.py**: Starts the sweep scheduler once the bot is ready and
  stops it when the cog is unloaded.
- **storage_cmds.py**: ``/storage`` slash command group (administrators only).
"""
