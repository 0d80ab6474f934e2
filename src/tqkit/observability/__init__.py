"""Logging setup for applications built on tqkit."""
