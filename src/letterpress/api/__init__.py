"""HTTP API for the Letterpress application."""
