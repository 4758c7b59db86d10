"""auth/ -- Authentication and session package for TeamRoster.

Layer rule: auth/ imports stdlib, third-party libraries and core/ only.
It does NOT import from api/ or teams/.
api/ and teams/ import from auth/, not the other way around.
"""
