"""Wire protocol and per-connection request handling."""
