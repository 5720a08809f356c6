"""Process-wide state shared by the bot, the diagnostics server and plugins.

``server.main`` fills ``commands`` once at startup; everything else only
reads it.  Plugins such as ``debug/buffer.py`` import this module from
inside their command bodies.
"""

import time

from bot_config import get_store_initial_size
from plugins.catalog_store import CatalogStore

commands = CatalogStore(get_store_initial_size())

# Set by server.main after the discovery pass
commands_dir: str = ""
started_at: float = time.time()
discovery_files: list[str] = []
discovery_skipped: list[dict] = []
