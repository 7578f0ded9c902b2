"""Shared building blocks: control errors and the statistics report."""
