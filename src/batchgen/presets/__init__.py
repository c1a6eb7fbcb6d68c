"""Angle/color presets and prompt templates."""
