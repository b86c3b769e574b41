"""
Application blueprints.
"""
