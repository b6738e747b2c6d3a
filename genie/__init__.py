"""Genie: project source context and single-slot chat for a local Ollama model."""
