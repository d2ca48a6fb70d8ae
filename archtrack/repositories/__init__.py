"""Persistence repositories."""
