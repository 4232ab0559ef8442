"""Local orchestration runtime: CLI, logging and stage lifecycle."""
