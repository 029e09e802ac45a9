"""
Common utilities shared across Aptitest: configuration, logging and the error
hierarchy.
"""
