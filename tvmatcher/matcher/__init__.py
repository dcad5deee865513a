"""Subtitle-based episode matching.

similarity -> cost_matrix -> assignment -> validation, driven by runner
with the probing and downloading fanned out by orchestrator.
"""
