"""Core building blocks: configuration, logging, process execution."""
