"""
Closed-form ephemeris: Sun, Moon, planets and time utilities.

No external data or network access; every position is computed from
polynomial and periodic series.
"""
