"""
Celestial navigation engine.

Offline ephemeris for the Sun, Moon, navigational planets and the 57
navigation stars, sextant altitude corrections, sight reduction into lines
of position, dead reckoning with set-and-drift, and pedestrian inertial
tracking.
"""

__version__ = "1.0.0"
