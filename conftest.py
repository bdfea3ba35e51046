import os

# Test settings, applied before config is first imported by any test module
os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")
os.environ.setdefault("VALID_TOKENS", "fake-client-token")
os.environ.setdefault("REPORTS_STORE", "local")
