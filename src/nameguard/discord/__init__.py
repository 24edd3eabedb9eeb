"""Discord integration: client, event wiring and guild collaborators."""
