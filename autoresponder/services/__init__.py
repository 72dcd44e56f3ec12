"""Matching, media resolution and reply dispatch."""
