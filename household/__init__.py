"""household/ -- Tenant boundary and per-household persistence for HomeBase.

Layer rule: household/ imports only stdlib, third-party libraries, and core/.
It does NOT import from api/, web/, auth/, or cache/.
api/, web/ and auth/ import from household/, not the other way around.
"""
