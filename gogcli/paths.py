"""XDG-compliant storage paths for gogcli.

Directory layout follows XDG Base Directory Specification:
- ~/.config/gogcli/  Config and credentials (persistent)
- ~/.cache/gogcli/   Logs and re-fetchable data (clearable)

See: https://specifications.freedesktop.org/basedir-spec/latest/
"""

from pathlib import Path

# Base directories
CONFIG_DIR = Path.home() / ".config" / "gogcli"
CACHE_DIR = Path.home() / ".cache" / "gogcli"

# Config: credentials and auth state
TOKEN_FILE = CONFIG_DIR / "token.json"
CLIENT_SECRET_FILE = CONFIG_DIR / "client_secret.json"
CONFIG_FILE = CONFIG_DIR / "config.json"

# Cache
LOG_FILE = CACHE_DIR / "gogcli.log"
