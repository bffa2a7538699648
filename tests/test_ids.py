"""
Tests for sync id and webhook secret generation.
"""

import base64
import re
from unittest.mock import patch

from syncloop.core.sync import (
    SYNC_ID_PREFIX,
    WEBHOOK_TOKEN_PREFIX,
    generate_sync_id,
    generate_webhook_secret,
)


class TestGenerateSyncId:
    def test_format(self):
        sync_id = generate_sync_id()
        assert re.fullmatch(r"cl_syn_[0-9a-f]{12}[0-9a-f]{16}", sync_id)
        assert sync_id.startswith(SYNC_ID_PREFIX)

    def test_unique(self):
        assert len({generate_sync_id() for _ in range(100)}) == 100

    def test_sorts_by_creation_time(self):
        with patch("syncloop.core.sync.ids.time.time", return_value=1000.0):
            earlier = generate_sync_id()
        with patch("syncloop.core.sync.ids.time.time", return_value=1000.5):
            later = generate_sync_id()
        assert earlier < later


class TestGenerateWebhookSecret:
    def test_prefix_and_encoding(self):
        secret = generate_webhook_secret()
        assert secret.startswith(WEBHOOK_TOKEN_PREFIX)

        password = base64.b64decode(secret[len(WEBHOOK_TOKEN_PREFIX) :]).decode()
        assert len(password) >= 32

    def test_unique(self):
        assert generate_webhook_secret() != generate_webhook_secret()
