"""Qt desktop presentation layer."""
