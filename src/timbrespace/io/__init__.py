"""Frame sources and report export."""
