"""extman command-line interface."""
