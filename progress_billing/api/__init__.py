"""
REST API for the Progress Billing engine.
"""
