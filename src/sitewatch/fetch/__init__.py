"""Content fetchers (HTTP + CSS selector extraction)."""
