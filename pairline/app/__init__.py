"""Pairline FastAPI application."""
