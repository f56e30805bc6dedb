"""waveline: message ingestion and command dispatch for a chat bot."""
