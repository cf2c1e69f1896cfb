"""HTTP API for the LLM layer."""
