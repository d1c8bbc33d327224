"""Test utilities and helpers for truelive_chat tests."""
