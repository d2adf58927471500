"""Vendor data access: credit governor, API client, normalization"""
