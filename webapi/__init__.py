"""
FastAPI server for hosted games.
"""
