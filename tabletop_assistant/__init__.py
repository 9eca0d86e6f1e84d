"""
Tabletop AI Assistant

A chat assistant for virtual tabletops: permission-gated chat commands,
a serialized operation queue for world edits and LLM-backed conversation.
"""

# Logging is configured at app entry point via tabletop_assistant/logging_utils.py

__version__ = "0.1.0"
__author__ = "Tabletop AI Assistant"
__description__ = "Chat-driven AI assistant for virtual tabletop sessions"
