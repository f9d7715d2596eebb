"""Command-line interface package."""

from .app import PromptForgeCLI, main

__all__ = ["PromptForgeCLI", "main"]
