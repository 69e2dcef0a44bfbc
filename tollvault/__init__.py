"""
TollVault - toll-collection CSV analytics
"""
__version__ = "1.0.0"
