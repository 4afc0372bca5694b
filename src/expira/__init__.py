"""
expira - product expiry and health check engine
"""

__version__ = "2.0.0"
