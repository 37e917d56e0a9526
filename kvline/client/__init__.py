"""Client library and command-line interface."""
