"""Domain rules, configuration and security primitives."""
