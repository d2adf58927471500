"""Persistence"""
