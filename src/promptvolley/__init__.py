"""
promptvolley — turn-by-turn refinement of image generation requests.
"""

__version__ = "1.0.0"
