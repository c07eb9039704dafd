"""Gate Access service."""
