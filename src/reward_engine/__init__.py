"""reward-engine: scheduled harvest, swap and distribution of token transfer tax."""

__version__ = "0.1.0"
