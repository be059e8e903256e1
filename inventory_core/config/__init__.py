"""Configuration models for the inventory aggregator."""
