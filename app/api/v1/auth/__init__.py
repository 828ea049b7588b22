"""Authentication module: registration, login and token issuing"""
