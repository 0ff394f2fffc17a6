"""Core building blocks: configuration, logging, constants and errors."""
