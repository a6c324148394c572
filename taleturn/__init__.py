"""
Taleturn - Turn-based storytelling game engine.

Players join a shared session, advance through ordered phases and draw
from finite, non-repeating prompt pools. The engine provides:
- Immutable session snapshots
- A phase transition table that validates every action
- Prompt pool allocation from the append-only turn ledger
- An optimistic-concurrency gateway for persistence and notification
"""

__version__ = "0.1.0"
