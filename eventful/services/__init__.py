"""
Business services for the ticketing core.
"""
