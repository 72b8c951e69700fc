"""Document store contract and its implementations."""
