"""Twelve Data trading signal scanner"""
__version__ = "1.0.0"
