"""Connectors: delivery sinks and interactive shells."""
