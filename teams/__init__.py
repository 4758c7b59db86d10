"""teams/ -- Team ownership and roster package for TeamRoster.

Layer rule: teams/ may import from auth/ and core/, never from api/.
"""
