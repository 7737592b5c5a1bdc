"""Dreik API - account and fitness tracking backend."""

__version__ = "0.1.0"
