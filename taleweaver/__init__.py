"""Turn-processing engine for LLM-narrated role-playing sessions."""
