"""
Chat Core

Permission-aware chat engine for the training coordination platform.
"""
__version__ = "0.1.0"
