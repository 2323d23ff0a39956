"""Authentication components: credentials, lockout, devices, sessions and audit."""
