"""auth/ -- Credential and session authority for AuthGuard.

Components (leaves first): CredentialVault (vault.py), TokenIssuer (tokens.py),
ApiKeyRegistry (api_keys.py), SessionRegistry (sessions.py), ActivityLedger
(activity.py), SecurityScorer (scoring.py), and the AccountDirectory
orchestrator (directory.py) that composes them over one Storage backend
(store.py, sql_store.py).

Layer rule: auth/ imports only stdlib + third-party libraries, plus core/ for
the composition root in directory.build_directory().
It does NOT import from api/. api/ imports from auth/, not the other way around.
"""
