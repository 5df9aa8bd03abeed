"""
Core domain: record models, row parsing and configuration.
"""
