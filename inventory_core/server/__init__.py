"""Resolution service, HTTP read API and CLI."""
