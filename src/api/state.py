from typing import Optional

from llm.llm_client import LLMClient
from storage.base import Repository
from storage.google_auth import GoogleTokenStore
from storage.image_store import ImageStore
from sync.change_feed import ChangeFeed, PostgresChangeListener
from sync.undo import UndoManager

# Process-wide singletons, set up at startup (or lazily by api.dependencies)
backend_type: str = "in-memory"
feed: Optional[ChangeFeed] = None
repo: Optional[Repository] = None
change_listener: Optional[PostgresChangeListener] = None
undo_manager: Optional[UndoManager] = None
token_store: Optional[GoogleTokenStore] = None
image_store: Optional[ImageStore] = None
llm_client: Optional[LLMClient] = None
