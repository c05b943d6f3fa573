"""Estudeaqui: study planning for exam preparation."""
__version__ = "0.1.0"
