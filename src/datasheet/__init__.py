"""
datasheet-cli: structured data extraction from component datasheets.

This package holds the Gemini File API upload cache used by the CLI to avoid
re-uploading the same PDF on every extraction run.
"""

__version__ = "0.3.0"
