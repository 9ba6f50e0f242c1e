"""Core configuration for the Letterpress application."""
