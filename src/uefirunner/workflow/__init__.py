"""Build/boot pipeline expressed as a pydantic-graph workflow."""
