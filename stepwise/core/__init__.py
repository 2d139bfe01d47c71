"""Prompt context layering shared by all collaborator agents."""
