"""
Infrastructure helpers shared across services.
"""
