"""sitewatch: cron-scheduled page watching with LLM summaries."""

__version__ = "0.1.0"
