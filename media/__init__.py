"""media/ -- Asset storage adapters (avatars, cover images).

Layer rule: media/ imports only stdlib, third-party libraries, and core/.
It does NOT import from api/ or auth/.
"""
