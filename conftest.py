"""
Root pytest configuration for Anon-Inbox.

Sets up Python path and test environment variables before settings are imported.
"""

import os
import sys
from pathlib import Path

_TEST_SECRET = "test_secret_key_for_pytest_only_not_for_production_use_minimum_32_chars"

os.environ.setdefault("INBOX_SERVICE_JWT_SECRET_KEY", _TEST_SECRET)
os.environ.setdefault("INBOX_SERVICE_APP_ENV", "development")
os.environ.setdefault("INBOX_SERVICE_APP_LOG_LEVEL", "DEBUG")
os.environ.setdefault("INBOX_REPO_USE_MONGO", "false")
# Cheap hashing keeps the suite fast
os.environ.setdefault("INBOX_SERVICE_ARGON2_TIME_COST", "1")
os.environ.setdefault("INBOX_SERVICE_ARGON2_MEMORY_COST", "1024")

project_root = Path(__file__).parent

src_path = project_root / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))
