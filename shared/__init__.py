"""
Shared models, errors, constants and configuration for the upload tool.
"""
