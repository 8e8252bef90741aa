"""Core building blocks: configuration, process handling and server lifecycle."""
