"""Converts labeled image folders into sharded Arrow datasets."""
