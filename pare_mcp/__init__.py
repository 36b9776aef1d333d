"""
Pare MCP core - policy enforcement and command execution for CLI tool servers.

Every tool server built on this package gets the same guarantees:
- Commands checked against basename allowlists before anything is spawned
- Working directories confined to canonical allowed roots
- Processes spawned without a shell, with bounded output and hard timeouts
- Paths redacted from diagnostics before they leave the server
- Full or compact JSON picked by estimated token cost
"""

from __future__ import annotations

__version__ = "0.1.0"
