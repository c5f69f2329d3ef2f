"""
Agent permission resolution for the clinic administration dashboard.
"""

__version__ = "1.0.0"
