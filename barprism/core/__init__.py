"""Core building blocks of barprism."""
