"""
Shared infrastructure for the chat gateway: settings, logging, correlation.
"""
