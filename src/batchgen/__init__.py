"""Batch image-generation orchestrator service."""
