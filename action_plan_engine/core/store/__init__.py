"""Entity storage: the EntityStore protocol and an in-memory implementation."""
