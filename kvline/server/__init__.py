"""TCP listener and server entry point."""
