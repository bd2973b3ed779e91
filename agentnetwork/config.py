"""
AgentNetwork Configuration
"""
import os
import json
from pathlib import Path

# Project root
BASE_DIR = Path(__file__).resolve().parent.parent

# SQLite database file
_repo_default_db = BASE_DIR / "data" / "network.db"
_user_default_db = Path.home() / ".agentnetwork" / "network.db"

config_data = {}
_config_file = BASE_DIR / "data" / "config.json"
if _config_file.exists():
    with open(_config_file, "r", encoding="utf-8") as _f:
        config_data = json.load(_f)


def _setting(name: str, default):
    return os.getenv(f"AGENTNETWORK_{name}", config_data.get(name, default))


if os.getenv("AGENTNETWORK_DB"):
    DB_PATH = os.getenv("AGENTNETWORK_DB")
elif _repo_default_db.parent.exists():
    DB_PATH = str(_repo_default_db)
else:
    # Installed package mode normally runs outside repository checkout.
    DB_PATH = str(_user_default_db)

# HTTP server - default to localhost only
HOST = _setting("HOST", "127.0.0.1")
PORT = int(_setting("PORT", "9080"))
RPC_PATH = _setting("RPC_PATH", "/rpc")
NETWORK_ENDPOINT = _setting("ENDPOINT", f"http://{HOST}:{PORT}{RPC_PATH}")
LOG_LEVEL = str(_setting("LOG_LEVEL", "INFO")).upper()
NETWORK_VERSION = "0.1.0"

# JSON-RPC method namespace
METHOD_PREFIX = "habiliai-agentnetwork-v1."

# Pagination
DEFAULT_THREAD_LIMIT = 20
DEFAULT_MESSAGE_LIMIT = 50
MAX_PAGE_LIMIT = int(_setting("MAX_PAGE_LIMIT", "200"))

# Liveness probing for CheckLive.
# "http": GET {addr}{LIVENESS_PATH} must answer 2xx within LIVENESS_TIMEOUT seconds.
# "record": an existing registry record counts as live.
LIVENESS_PROBE = str(_setting("LIVENESS_PROBE", "http")).lower()
LIVENESS_PATH = _setting("LIVENESS_PATH", "/health")
LIVENESS_TIMEOUT = float(_setting("LIVENESS_TIMEOUT", "5.0"))

# Agents not seen live for this many seconds are dropped by the sweep (0 = disabled)
AGENT_STALE_TIMEOUT = int(_setting("AGENT_STALE_TIMEOUT", "150"))
AGENT_STALE_SWEEP_ENABLED = AGENT_STALE_TIMEOUT > 0
# How often the stale-agent sweep runs (seconds)
AGENT_SWEEP_INTERVAL = int(_setting("AGENT_SWEEP_INTERVAL", "60"))
