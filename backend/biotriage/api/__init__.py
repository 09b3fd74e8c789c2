"""
BioTriage - HTTP API Package
"""
