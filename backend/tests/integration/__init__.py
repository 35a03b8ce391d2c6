"""
Integration tests for the stock data service and its HTTP routes.
"""
