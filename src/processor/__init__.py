"""Message processing: command handlers, event listeners and their wiring."""
