"""HTTP API for AgentFlow Core."""
