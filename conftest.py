"""Root conftest: pins the test environment before relay_service.config is imported.

Values from ``.env.test`` win over the shell, and provider credentials are
dropped so no test can reach the real WhatsApp API.
"""
from __future__ import annotations

import os
from pathlib import Path

for _name in ("WHATSAPP_ACCESS_TOKEN", "PHONE_NUMBER_ID", "APP_SECRET", "JWKS_URL"):
    os.environ.pop(_name, None)

_env_test = Path(__file__).resolve().parent / ".env.test"
if _env_test.exists():
    for line in _env_test.read_text().splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        key, _, value = line.partition("=")
        os.environ[key.strip()] = value.strip()
