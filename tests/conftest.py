"""Root conftest — isolates the relay config dir BEFORE any termrelay module runs.

Settings resolve the config dir and Slack secrets from the environment, so
real values must never leak into tests.
"""

import os
import tempfile

# Force-set (not setdefault) to prevent real env vars from leaking into tests
os.environ["TERMRELAY_DIR"] = tempfile.mkdtemp(prefix="termrelay-test-")
os.environ.pop("SLACK_SIGNING_SECRET", None)
os.environ.pop("SLACK_BOT_TOKEN", None)
