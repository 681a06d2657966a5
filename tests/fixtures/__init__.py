"""Test fixtures for the coder service.

This package provides reusable test fixtures:
- project: Path trees and virtual filesystems with known contents
- backend: A scripted backend and an instant sleep for the chat session
"""
