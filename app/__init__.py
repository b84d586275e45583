"""
FastAPI Application Package

This package contains the FastAPI application: REST endpoints over the whale
engine's state and the /ws/whales stream that relays its live events.
"""
