"""
Core modules for AI Client.

This package contains error classification, retry handling, usage
accounting and conversation windowing.
"""
