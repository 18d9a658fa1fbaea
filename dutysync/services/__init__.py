"""Swap workflow engine, its collaborator contracts and their SQL implementations."""
