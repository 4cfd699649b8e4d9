"""Parish census survey intake API."""
