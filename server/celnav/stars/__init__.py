"""
Navigation stars module.

Provides the 57 navigation stars of the nautical almanac (plus Polaris)
and their Greenwich hour angles for any instant.
"""
