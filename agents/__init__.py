"""
Move and item-card agents.
"""
