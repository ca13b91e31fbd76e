"""tradesim command-line interface."""
