"""GameHunt progression engine: XP ledger, levels, badges and leaderboards."""

__version__ = "0.1.0"
