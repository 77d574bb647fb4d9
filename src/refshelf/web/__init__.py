"""HTTP API for a local refshelf library."""
