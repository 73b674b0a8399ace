import os
import json
from decimal import Decimal
from pathlib import Path
from typing import Optional
import datetime
import logging

from bidding.models import Identity, Session, TokenPair

logger = logging.getLogger(__name__)

CONFIG_DIR = Path(os.getenv("AUCTION_CONFIG_DIR", str(Path.home() / ".auction-client")))
CONFIG_FILE = CONFIG_DIR / "config.json"
SESSION_FILE = CONFIG_DIR / "session.json"


def get_server_url() -> str:
    return os.getenv("AUCTION_API_URL", "http://localhost:3000/api")


def get_request_timeout() -> float:
    return float(os.getenv("AUCTION_REQUEST_TIMEOUT", "10"))


def get_bid_increment() -> Decimal:
    """Smallest currency unit a bid must rise by."""
    return Decimal(os.getenv("AUCTION_BID_INCREMENT", "0.01"))


def ensure_config_dir():
    """Ensure config directory exists."""
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)


def load_session() -> Optional[Session]:
    """Get the session saved by a previous command, if any."""
    if not SESSION_FILE.exists():
        return None
    try:
        raw = json.loads(SESSION_FILE.read_text())
        return Session(
            tokens=TokenPair.model_validate(raw["tokens"]),
            identity=Identity.model_validate(raw["identity"]),
        )
    except (ValueError, KeyError) as e:
        logger.warning(f"Ignoring unreadable session file {SESSION_FILE}: {e}")
        return None


def save_session(session: Optional[Session]):
    """Persist the session, or remove the file when there is none."""
    ensure_config_dir()
    if session is None:
        SESSION_FILE.unlink(missing_ok=True)
        return
    # Owner-only from creation; fchmod covers a file left by an older version
    fd = os.open(SESSION_FILE, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    os.fchmod(fd, 0o600)
    with os.fdopen(fd, "w") as f:
        json.dump({
            "tokens": session.tokens.to_wire(),
            "identity": session.identity.to_wire(),
        }, f)


def get_timezone() -> str:
    """Get user timezone from config, or use system local timezone."""
    if CONFIG_FILE.exists():
        config = json.loads(CONFIG_FILE.read_text())
        configured_tz = config.get("timezone")
        if configured_tz:
            return configured_tz

    # /etc/localtime is a symlink into a zoneinfo tree, e.g. /usr/share/zoneinfo/Europe/London
    localtime_path = Path("/etc/localtime")
    if localtime_path.exists():
        parts = localtime_path.resolve().parts
        for zoneinfo_name in ["zoneinfo", "zoneinfo.default"]:
            if zoneinfo_name in parts:
                tz_name = "/".join(parts[parts.index(zoneinfo_name) + 1:])
                if tz_name:
                    return tz_name

    from zoneinfo import ZoneInfo
    local_tz = datetime.datetime.now().astimezone().tzinfo
    if isinstance(local_tz, ZoneInfo):
        return local_tz.key

    return "UTC"
