"""
SuperStock - HTTP API
"""
