"""auth/ -- Credential verification and session lifecycle for VidTube.

Layer rule: auth/ imports only stdlib, third-party libraries, core/, and
media/ (for the asset store interface). It does NOT import from api/.
api/ imports from auth/, not the other way around.
"""
