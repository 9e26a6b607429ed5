"""Test suite for the AI Repair Assistant.

This package contains tests for case archive import and normalization, prompt
assembly, the resilient invoker, the Gemini client, report rendering, the
session owner and the command-line interface.
"""
