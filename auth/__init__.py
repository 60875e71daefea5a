"""auth/ -- Credential store, password hashing, session tokens and profile rules for NexusAuth.

Layer rule: auth/ imports only stdlib + third-party libraries.
It does NOT import from api/ or core/. api/ imports from auth/, not the
other way around; configuration values arrive as constructor arguments.
"""
