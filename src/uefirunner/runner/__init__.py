"""Build and packaging stages."""
