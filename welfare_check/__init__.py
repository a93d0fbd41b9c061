"""Welfare Check - Retell call status reconciliation service"""

__version__ = "1.0.0"
