"""CLI command implementations for algorun.

- create: Fresh install, sync wait and catchup
- update: Replace binaries and restart
- catchup, start, stop, status: Node lifecycle
- goal: Pass-through to the goal control binary
"""

from algorun.commands.node import catchup, create, goal, start, status, stop, update

__all__ = ["catchup", "create", "goal", "start", "status", "stop", "update"]
