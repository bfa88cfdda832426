"""Bilingual side-by-side translation of Markdown documents."""

__version__ = "0.1.0"
