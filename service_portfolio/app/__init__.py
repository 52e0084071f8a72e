"""
Portfolio API service: public site content served through a collection cache.
"""
