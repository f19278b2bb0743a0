"""extman core components."""
