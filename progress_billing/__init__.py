"""
Progress Billing - AIA G702/G703 payment application engine.
"""

__version__ = "1.0.0"
