"""auth/ -- Credential hashing, bearer tokens, and the request auth gate for Staylist.

Layer rule: auth/ imports only stdlib + third-party libraries.
It does NOT import from api/. api/ imports from auth/, not the other way around.
Settings from core/ are passed in by the caller rather than read here.
"""
