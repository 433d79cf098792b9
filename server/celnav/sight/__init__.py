"""
Sight processing: altitude corrections, sight reduction, lines of
position and the observation lifecycle.
"""
