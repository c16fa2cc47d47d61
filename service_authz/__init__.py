"""
Authorization service package for the Access Layer.
"""
