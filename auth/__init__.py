"""auth/ -- Authentication and authorization package for HomeBase.

Layer rule: auth/ imports stdlib, third-party libraries, core/ and household/.
It does NOT import from api/, web/, or cache/.
api/ and web/ import from auth/, not the other way around.
"""
