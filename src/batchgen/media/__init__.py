"""Persistence of generated images."""
