"""EcoFlow cloud integration: credentials, topics and the message pipeline."""
