"""
Order Prioritization Service
"""
