"""
pulsewatch - alert governance for competitive-intelligence content.
"""
__version__ = "0.1.0"
