"""
Posture Coach
=============
Webcam posture checks and repetition counting on top of external pose models.
"""

__version__ = "0.1.0"
