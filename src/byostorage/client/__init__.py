"""Client module - Storage backends, local cache and the sync engine."""
