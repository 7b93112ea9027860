"""
HTTP API for the terrain editor.
"""
