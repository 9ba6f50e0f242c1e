"""Command-line entry points for operating Letterpress."""
