"""
HTTP layer for the engagement analytics feature.
"""
