"""Alembic migrations"""
