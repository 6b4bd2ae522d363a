"""Inphrone backend: opinions, InphroSync polls, Your Turn slots and rewards."""

__version__ = "1.0.0"
