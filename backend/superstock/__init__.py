"""
SuperStock - Stock Data Service
Multi-provider quote retrieval with caching, throttling and circuit breaking.
"""
__version__ = "1.0.0"
