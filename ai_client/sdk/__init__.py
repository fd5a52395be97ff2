"""
SDK for AI Client.

Provides programmatic access to the tracked Anthropic client.
"""

from .anthropic_client import AnthropicGateway, ChatResult, StatsNotSavedError, TrackedAnthropic

__all__ = ["AnthropicGateway", "ChatResult", "StatsNotSavedError", "TrackedAnthropic"]
