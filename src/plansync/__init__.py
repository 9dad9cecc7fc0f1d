"""plansync: AI-assisted plan generation with calendar synchronization."""

__version__ = "0.1.0"
