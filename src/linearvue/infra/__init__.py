"""
Infrastructure layer - database, logging, settings, and technical concerns.
"""
