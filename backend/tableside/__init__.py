"""Tableside song-request queue and playlist ordering service."""
