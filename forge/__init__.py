"""Forge Your Journey: an AI-narrated, choice-driven text adventure."""
